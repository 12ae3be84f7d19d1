"""
Liquidity share math: how many shares a deposit mints, and what a burn returns.
"""

from __future__ import annotations

from typing import Tuple

from ..errors import InsufficientLiquidityMinted
from ..state.balances import Amount
from .isqrt import isqrt


def compute_shares_minted(
    reserve_a: Amount,
    reserve_b: Amount,
    amount_a: Amount,
    amount_b: Amount,
    total_shares: Amount,
) -> Amount:
    """
    Compute shares to mint for a liquidity deposit.

    For first deposit (total_shares == 0):
        shares = floor(sqrt(amount_a * amount_b))

    For subsequent deposits:
        shares = min(floor(amount_a * total_shares / reserve_a),
                     floor(amount_b * total_shares / reserve_b))

    The geometric mean fixes the share unit independently of either asset's
    decimal scale; the minimum of the two proportional estimates caps the
    issuance at the binding side of the deposit.

    Args:
        reserve_a: Current reserve of asset A
        reserve_b: Current reserve of asset B
        amount_a: Amount of asset A being deposited
        amount_b: Amount of asset B being deposited
        total_shares: Current total share supply

    Returns:
        Number of shares to mint (always positive)

    Raises:
        InsufficientLiquidityMinted: If the computed share count is zero
        ValueError: If inputs are negative or the state is inconsistent
    """
    if reserve_a < 0 or reserve_b < 0:
        raise ValueError(f"Reserves must be non-negative: ({reserve_a}, {reserve_b})")
    if amount_a < 0 or amount_b < 0:
        raise ValueError(f"Deposit amounts must be non-negative: ({amount_a}, {amount_b})")
    if total_shares < 0:
        raise ValueError(f"Total shares must be non-negative: {total_shares}")

    if total_shares == 0:
        if reserve_a != 0 or reserve_b != 0:
            raise ValueError("cannot mint initial shares when reserves are non-zero")
        shares = isqrt(amount_a * amount_b)
    else:
        if reserve_a == 0 or reserve_b == 0:
            raise ValueError("cannot mint into an empty pool when total_shares > 0")
        shares_a = (amount_a * total_shares) // reserve_a
        shares_b = (amount_b * total_shares) // reserve_b
        shares = min(shares_a, shares_b)

    if shares <= 0:
        raise InsufficientLiquidityMinted(
            f"deposit ({amount_a}, {amount_b}) would mint zero shares"
        )
    return shares


def compute_withdraw_amounts(
    shares: Amount,
    reserve_a: Amount,
    reserve_b: Amount,
    total_shares: Amount,
) -> Tuple[Amount, Amount]:
    """
    Compute asset amounts returned for burning `shares`.

    Formula:
        amount_a = floor(shares * reserve_a / total_shares)
        amount_b = floor(shares * reserve_b / total_shares)
    """
    if shares <= 0:
        raise ValueError(f"shares must be positive: {shares}")
    if total_shares <= 0:
        raise ValueError(f"total_shares must be positive: {total_shares}")
    if shares > total_shares:
        raise ValueError(f"Cannot burn more shares than supply: {shares} > {total_shares}")
    if reserve_a < 0 or reserve_b < 0:
        raise ValueError(f"Reserves must be non-negative: ({reserve_a}, {reserve_b})")

    amount_a = (shares * reserve_a) // total_shares
    amount_b = (shares * reserve_b) // total_shares
    return amount_a, amount_b
