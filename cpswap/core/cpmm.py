"""
Constant Product Market Maker (CPMM) pricing.

Fee-less, integer-only pricing for a two-asset pool. Every function here is
pure: the result depends only on the arguments, so quotes can be computed
without a pool object.

Algorithm Design:
- Type: Fixed-Point Integer Arithmetic / Deterministic Rounding
- Time Complexity: O(1) per quote
- Invariant: for a swap priced by `quote`, x' * y' >= x * y
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import InsufficientAAmount, InsufficientLiquidity, InvalidSwapInput
from ..state.balances import Amount

# Fixed-point scale for spot prices (price of 1 unit of X in units of Y, times 1e18).
PRICE_SCALE = 10**18


def _require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


def _ceil_div_nonneg(numerator: int, denominator: int) -> int:
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    if numerator < 0:
        raise ValueError("numerator must be non-negative")
    return (numerator + denominator - 1) // denominator


def quote(amount_in: Amount, reserve_in: Amount, reserve_out: Amount) -> Amount:
    """
    Output amount for an exact-in swap.

        amount_out = floor(amount_in * reserve_out / (reserve_in + amount_in))

    Truncation only ever rounds the output down, so the pool's constant
    product never decreases.

    Raises:
        InvalidSwapInput: If amount_in <= 0
        InsufficientLiquidity: If either reserve is zero
    """
    for name, v in (
        ("amount_in", amount_in),
        ("reserve_in", reserve_in),
        ("reserve_out", reserve_out),
    ):
        _require_int(name, v)

    if amount_in <= 0:
        raise InvalidSwapInput(f"amount_in must be positive: {amount_in}")
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity(f"cannot swap against an empty reserve: ({reserve_in}, {reserve_out})")

    return (amount_in * reserve_out) // (reserve_in + amount_in)


def quote_amount_in(amount_out: Amount, reserve_in: Amount, reserve_out: Amount) -> Amount:
    """
    Minimal input whose exact-in quote yields at least `amount_out`.

        amount_in = ceil(reserve_in * amount_out / (reserve_out - amount_out))

    Raises:
        InvalidSwapInput: If amount_out <= 0
        InsufficientLiquidity: If a reserve is zero or amount_out drains reserve_out
    """
    for name, v in (
        ("amount_out", amount_out),
        ("reserve_in", reserve_in),
        ("reserve_out", reserve_out),
    ):
        _require_int(name, v)

    if amount_out <= 0:
        raise InvalidSwapInput(f"amount_out must be positive: {amount_out}")
    if reserve_in <= 0 or reserve_out <= 0:
        raise InsufficientLiquidity(f"cannot swap against an empty reserve: ({reserve_in}, {reserve_out})")
    if amount_out >= reserve_out:
        raise InsufficientLiquidity(
            f"Cannot drain full reserve: amount_out ({amount_out}) >= reserve_out ({reserve_out})"
        )

    return _ceil_div_nonneg(reserve_in * amount_out, reserve_out - amount_out)


def spot_price(reserve_self: Amount, reserve_other: Amount) -> Amount:
    """Price of one unit of the `reserve_self` asset in the other asset, scaled by PRICE_SCALE."""
    _require_int("reserve_self", reserve_self)
    _require_int("reserve_other", reserve_other)
    if reserve_self <= 0:
        raise ValueError("reserve_self must be positive")
    return (reserve_other * PRICE_SCALE) // reserve_self


@dataclass(frozen=True)
class OptimalDeposit:
    amount_a: int
    amount_b: int


def optimal_deposit(
    *,
    reserve_a: Amount,
    reserve_b: Amount,
    desired_a: Amount,
    desired_b: Amount,
) -> OptimalDeposit:
    """
    Ratio-preserving amounts to take from a deposit, never exceeding either desired amount.

    An empty pool takes everything. Otherwise the side that binds at the
    current reserve ratio is taken in full and the other is scaled down
    (floor rounding).

    Raises:
        InsufficientAAmount: If neither allocation fits inside the desired amounts
    """
    for name, v in (
        ("reserve_a", reserve_a),
        ("reserve_b", reserve_b),
        ("desired_a", desired_a),
        ("desired_b", desired_b),
    ):
        _require_int(name, v)
    if reserve_a < 0 or reserve_b < 0:
        raise ValueError("reserves must be non-negative")
    if desired_a < 0 or desired_b < 0:
        raise ValueError("desired amounts must be non-negative")

    if reserve_a == 0 and reserve_b == 0:
        return OptimalDeposit(amount_a=desired_a, amount_b=desired_b)
    if reserve_a == 0 or reserve_b == 0:
        raise ValueError(f"one-sided reserves: ({reserve_a}, {reserve_b})")

    b_optimal = (desired_a * reserve_b) // reserve_a
    if b_optimal <= desired_b:
        amount_a, amount_b = desired_a, b_optimal
    else:
        a_optimal = (desired_b * reserve_a) // reserve_b
        if a_optimal > desired_a:
            raise InsufficientAAmount(f"a_optimal ({a_optimal}) > desired_a ({desired_a})")
        amount_a, amount_b = a_optimal, desired_b

    return OptimalDeposit(amount_a=amount_a, amount_b=amount_b)
