"""
Pool coordinator: deposit, withdraw and swap against one asset pair.

This is the imperative shell around the pure pricing and share math:
- validate the request and compute every amount up front (fail-closed),
- move assets through the asset collaborators,
- update the reserve and share ledgers,
- check invariants and record the emitted event.

Each mutating operation holds the pool's lock for its whole duration and
refuses re-entry from the same thread (e.g. from inside a transfer callback).
If a later step fails after an earlier transfer went through, ledgers are
restored and completed transfers are compensated before the error is raised.
A payout that cannot be clawed back stays reflected in the reserves, so the
reserves never claim more than the pool holds, and `RollbackIncomplete` is
raised instead.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from ..errors import (
    Expired,
    InsufficientShares,
    InvalidAmount,
    InvalidRecipient,
    InvalidSwapInput,
    InvalidTokenPath,
    InvalidTokens,
    NoLiquidity,
    PoolInvariantError,
    ReentrantCall,
    RollbackIncomplete,
    SlippageExceeded,
    TransferFailed,
)
from ..state.balances import Address, Amount, AssetId
from ..state.reserves import ReserveLedger
from ..state.shares import ShareLedger
from .cpmm import optimal_deposit, quote, spot_price
from .invariants import check_all
from .liquidity import compute_shares_minted, compute_withdraw_amounts
from .types import DepositResult, Event, PoolEvent, PoolStatus, SwapResult, WithdrawResult

if TYPE_CHECKING:
    from ..integration.assets import AssetTransfer

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

DEFAULT_POOL_ADDRESS = "pool"


@dataclass(frozen=True)
class _Leg:
    """A completed transfer, recorded as the call that reverses it."""

    asset_id: AssetId
    undo_fn: str
    source: Address
    dest: Address
    amount: Amount
    # True for assets the pool sent out, False for assets it pulled in.
    payout: bool

    def describe(self) -> str:
        return f"{self.undo_fn}({self.source}->{self.dest}, {self.amount} {self.asset_id})"


UndoLog = List[_Leg]


def wall_clock() -> int:
    return int(time.time())


def _require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


def _require_amount(name: str, value: int) -> None:
    _require_int(name, value)
    if value < 0:
        raise InvalidAmount(f"{name} must be non-negative: {value}")


class Pool:
    """
    A two-asset constant-product pool.

    Args:
        asset_a: Collaborator for the first asset
        asset_b: Collaborator for the second asset (distinct id)
        address: The pool's own account on the asset ledgers
        clock: Trusted current-time source, compared against deadlines
        check_invariants: Verify the post-state of every mutating operation
    """

    def __init__(
        self,
        asset_a: "AssetTransfer",
        asset_b: "AssetTransfer",
        *,
        address: Address = DEFAULT_POOL_ADDRESS,
        clock: Clock = wall_clock,
        check_invariants: bool = True,
    ) -> None:
        id_a = asset_a.asset_id
        id_b = asset_b.asset_id
        if not id_a or not id_b:
            raise InvalidTokens("asset identifiers must be non-empty")
        if id_a == id_b:
            raise InvalidTokens(f"pool assets must be distinct: {id_a!r}")
        if not address:
            raise ValueError("pool address must be non-empty")

        self._asset_a: AssetId = id_a
        self._asset_b: AssetId = id_b
        self._assets: Dict[AssetId, "AssetTransfer"] = {id_a: asset_a, id_b: asset_b}
        self._address: Address = address
        self._clock = clock
        self._check_invariants = bool(check_invariants)

        self._reserves = ReserveLedger()
        self._shares = ShareLedger()
        self._events: List[PoolEvent] = []

        self._lock = threading.Lock()
        self._owner: Optional[int] = None

    @classmethod
    def from_state(
        cls,
        asset_a: "AssetTransfer",
        asset_b: "AssetTransfer",
        *,
        reserve_a: Amount,
        reserve_b: Amount,
        share_balances: Mapping[Address, Amount],
        **kwargs,
    ) -> "Pool":
        """Rebuild a pool from previously captured ledgers (see `integration.snapshot`)."""
        pool = cls(asset_a, asset_b, **kwargs)
        pool._reserves.restore(reserve_a, reserve_b)
        pool._shares.restore(dict(share_balances))
        violations = check_all(pool._reserves, pool._shares)
        if violations:
            raise PoolInvariantError(violations)
        return pool

    # -- read side ------------------------------------------------------------

    @property
    def asset_a(self) -> AssetId:
        return self._asset_a

    @property
    def asset_b(self) -> AssetId:
        return self._asset_b

    @property
    def address(self) -> Address:
        return self._address

    @property
    def status(self) -> PoolStatus:
        return PoolStatus.EMPTY if self._shares.total_shares == 0 else PoolStatus.SEEDED

    @property
    def total_shares(self) -> Amount:
        return self._shares.total_shares

    @property
    def events(self) -> Tuple[PoolEvent, ...]:
        return tuple(self._events)

    def share_balance(self, provider: Address) -> Amount:
        return self._shares.balance_of(provider)

    def share_balances(self) -> Dict[Address, Amount]:
        return self._shares.get_all_balances()

    def get_reserves(self) -> Tuple[Amount, Amount]:
        return self._reserves.get()

    def get_price(self, asset_x: AssetId, asset_y: AssetId) -> Amount:
        """
        Spot price of one unit of `asset_x` in units of `asset_y`, scaled by 1e18.

        Raises:
            InvalidTokens: If (asset_x, asset_y) is not this pool's pair
            NoLiquidity: If the reserve of asset_x is zero
        """
        if {asset_x, asset_y} != {self._asset_a, self._asset_b}:
            raise InvalidTokens(f"({asset_x!r}, {asset_y!r}) is not this pool's pair")
        reserve_x, reserve_y = self._reserve_pair(asset_x)
        if reserve_x == 0:
            raise NoLiquidity(f"reserve of {asset_x!r} is zero")
        return spot_price(reserve_x, reserve_y)

    def preview_withdraw(self, shares: Amount) -> Tuple[Amount, Amount]:
        """Amounts that burning `shares` would return at the current reserves."""
        _require_int("shares", shares)
        if shares <= 0:
            raise InvalidAmount(f"shares must be positive: {shares}")
        if shares > self._shares.total_shares:
            raise InsufficientShares(f"{shares} > total shares {self._shares.total_shares}")
        reserve_a, reserve_b = self._reserves.get()
        return compute_withdraw_amounts(shares, reserve_a, reserve_b, self._shares.total_shares)

    def check_invariants(self) -> List[str]:
        """Names of violated invariants (empty when the pool is consistent)."""
        return check_all(self._reserves, self._shares)

    # -- mutating operations --------------------------------------------------

    def deposit(
        self,
        sender: Address,
        desired_a: Amount,
        desired_b: Amount,
        min_a: Amount,
        min_b: Amount,
        recipient: Address,
        deadline: int,
    ) -> DepositResult:
        """
        Add liquidity, minting shares to `recipient`.

        An empty pool takes both desired amounts as-is. A seeded pool takes
        the largest ratio-preserving pair that fits inside them.
        """
        with self._exclusive():
            self._ensure_live(recipient, deadline)
            for name, v in (
                ("desired_a", desired_a),
                ("desired_b", desired_b),
                ("min_a", min_a),
                ("min_b", min_b),
            ):
                _require_amount(name, v)

            reserve_a, reserve_b = self._reserves.get()
            alloc = optimal_deposit(
                reserve_a=reserve_a,
                reserve_b=reserve_b,
                desired_a=desired_a,
                desired_b=desired_b,
            )
            amount_a, amount_b = alloc.amount_a, alloc.amount_b
            if amount_a < min_a:
                raise SlippageExceeded(f"amount_a ({amount_a}) < min_a ({min_a})")
            if amount_b < min_b:
                raise SlippageExceeded(f"amount_b ({amount_b}) < min_b ({min_b})")

            minted = compute_shares_minted(
                reserve_a, reserve_b, amount_a, amount_b, self._shares.total_shares
            )
            logger.debug(
                "deposit computed: amount_a=%d amount_b=%d shares=%d desired=(%d, %d)",
                amount_a, amount_b, minted, desired_a, desired_b,
            )

            with self._atomic() as undo:
                self._pull(self._asset_a, sender, amount_a, undo)
                self._pull(self._asset_b, sender, amount_b, undo)
                self._shares.issue(recipient, minted)
                self._reserves.apply_delta(amount_a, amount_b)
                self._verify()

            self._emit(
                PoolEvent(
                    event=Event.LIQUIDITY_ADDED,
                    account=recipient,
                    amount_a=amount_a,
                    amount_b=amount_b,
                    shares=minted,
                )
            )
            logger.info(
                "liquidity added: provider=%s amount_a=%d amount_b=%d shares_minted=%d",
                recipient, amount_a, amount_b, minted,
            )
            return DepositResult(amount_a=amount_a, amount_b=amount_b, shares_minted=minted)

    def withdraw(
        self,
        sender: Address,
        shares: Amount,
        min_a: Amount,
        min_b: Amount,
        recipient: Address,
        deadline: int,
    ) -> WithdrawResult:
        """Burn `shares` held by `sender` and send the proportional reserves to `recipient`."""
        with self._exclusive():
            self._ensure_live(recipient, deadline)
            for name, v in (("shares", shares), ("min_a", min_a), ("min_b", min_b)):
                _require_amount(name, v)
            if shares == 0:
                raise InvalidAmount("shares must be positive")
            held = self._shares.balance_of(sender)
            if held < shares:
                raise InsufficientShares(f"share balance {held} < {shares}")

            reserve_a, reserve_b = self._reserves.get()
            amount_a, amount_b = compute_withdraw_amounts(
                shares, reserve_a, reserve_b, self._shares.total_shares
            )
            if amount_a < min_a:
                raise SlippageExceeded(f"amount_a ({amount_a}) < min_a ({min_a})")
            if amount_b < min_b:
                raise SlippageExceeded(f"amount_b ({amount_b}) < min_b ({min_b})")

            with self._atomic() as undo:
                # Burn before touching reserves: a failed redeem leaves nothing to unwind.
                self._shares.redeem(sender, shares)
                self._reserves.apply_delta(-amount_a, -amount_b)
                self._push(self._asset_a, recipient, amount_a, undo)
                self._push(self._asset_b, recipient, amount_b, undo)
                self._verify()

            self._emit(
                PoolEvent(
                    event=Event.LIQUIDITY_REMOVED,
                    account=sender,
                    amount_a=amount_a,
                    amount_b=amount_b,
                    shares=shares,
                )
            )
            logger.info(
                "liquidity removed: provider=%s amount_a=%d amount_b=%d shares_burned=%d",
                sender, amount_a, amount_b, shares,
            )
            return WithdrawResult(amount_a=amount_a, amount_b=amount_b, shares_burned=shares)

    def swap(
        self,
        sender: Address,
        amount_in: Amount,
        amount_out_min: Amount,
        input_asset: AssetId,
        output_asset: AssetId,
        recipient: Address,
        deadline: int,
    ) -> SwapResult:
        """Exact-in swap of `input_asset` for `output_asset`, paid to `recipient`."""
        with self._exclusive():
            self._ensure_live(recipient, deadline)
            _require_int("amount_in", amount_in)
            if amount_in <= 0:
                raise InvalidSwapInput(f"amount_in must be positive: {amount_in}")
            _require_amount("amount_out_min", amount_out_min)
            if {input_asset, output_asset} != {self._asset_a, self._asset_b}:
                raise InvalidTokenPath(f"({input_asset!r} -> {output_asset!r}) is not this pool's pair")

            reserve_in, reserve_out = self._reserve_pair(input_asset)
            amount_out = quote(amount_in, reserve_in, reserve_out)
            if amount_out < amount_out_min:
                raise SlippageExceeded(f"amount_out ({amount_out}) < amount_out_min ({amount_out_min})")
            logger.debug(
                "swap quoted: %s->%s amount_in=%d amount_out=%d reserves=(%d, %d)",
                input_asset, output_asset, amount_in, amount_out, reserve_in, reserve_out,
            )

            k_before = self._reserves.constant_product()
            with self._atomic() as undo:
                self._pull(input_asset, sender, amount_in, undo)
                if input_asset == self._asset_a:
                    self._reserves.apply_delta(amount_in, -amount_out)
                else:
                    self._reserves.apply_delta(-amount_out, amount_in)
                self._push(output_asset, recipient, amount_out, undo)
                self._verify(min_product=k_before)

            self._emit(
                PoolEvent(
                    event=Event.SWAP_EXECUTED,
                    account=sender,
                    amount_in=amount_in,
                    amount_out=amount_out,
                    input_asset=input_asset,
                    output_asset=output_asset,
                )
            )
            logger.info(
                "swap executed: trader=%s %s->%s amount_in=%d amount_out=%d",
                sender, input_asset, output_asset, amount_in, amount_out,
            )
            return SwapResult(amount_in=amount_in, amount_out=amount_out)

    # -- internals ------------------------------------------------------------

    def _reserve_pair(self, asset_x: AssetId) -> Tuple[Amount, Amount]:
        reserve_a, reserve_b = self._reserves.get()
        if asset_x == self._asset_a:
            return reserve_a, reserve_b
        return reserve_b, reserve_a

    def _ensure_live(self, recipient: Address, deadline: int) -> None:
        _require_int("deadline", deadline)
        now = self._clock()
        if deadline < now:
            raise Expired(f"deadline {deadline} < now {now}")
        if recipient is None or recipient == "":
            raise InvalidRecipient("recipient must be set")

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        me = threading.get_ident()
        if self._owner == me:
            raise ReentrantCall("a pool operation is already in progress on this thread")
        with self._lock:
            self._owner = me
            try:
                yield
            finally:
                self._owner = None

    @contextmanager
    def _atomic(self) -> Iterator[UndoLog]:
        saved_reserves = self._reserves.get()
        saved_shares = self._shares.get_all_balances()
        undo: UndoLog = []
        try:
            yield undo
        except Exception as exc:
            self._reserves.restore(*saved_reserves)
            self._shares.restore(saved_shares)
            unrecovered: List[_Leg] = []
            for leg in reversed(undo):
                if not self._compensate(leg):
                    unrecovered.append(leg)
            if not unrecovered:
                raise
            for leg in unrecovered:
                if leg.payout:
                    # The recipient kept it, so the pool no longer holds it.
                    self._reserves.apply_delta(*self._reserve_delta(leg.asset_id, -leg.amount))
            described = [leg.describe() for leg in unrecovered]
            logger.error("rollback incomplete: reserves=%s unrecovered=%s", self._reserves.get(), described)
            raise RollbackIncomplete(str(exc), described) from exc

    def _reserve_delta(self, asset_id: AssetId, amount: int) -> Tuple[int, int]:
        if asset_id == self._asset_a:
            return amount, 0
        return 0, amount

    def _verify(self, *, min_product: Optional[int] = None) -> None:
        if not self._check_invariants:
            return
        violations = check_all(self._reserves, self._shares)
        if min_product is not None and self._reserves.constant_product() < min_product:
            violations.append("constant_product_non_decreasing")
        if violations:
            raise PoolInvariantError(violations)

    def _transfer(self, asset_id: AssetId, fn_name: str, source: Address, dest: Address, amount: Amount) -> None:
        asset = self._assets[asset_id]
        try:
            ok = getattr(asset, fn_name)(source, dest, amount)
        except Exception as exc:
            logger.warning(
                "%s raised: asset=%s %s->%s amount=%d: %s",
                fn_name, asset_id, source, dest, amount, exc,
            )
            raise TransferFailed(f"{fn_name} of {amount} {asset_id} raised: {exc}") from exc
        if not ok:
            logger.warning(
                "%s refused: asset=%s %s->%s amount=%d", fn_name, asset_id, source, dest, amount,
            )
            raise TransferFailed(f"{fn_name} of {amount} {asset_id} from {source} to {dest} failed")

    def _compensate(self, leg: _Leg) -> bool:
        try:
            self._transfer(leg.asset_id, leg.undo_fn, leg.source, leg.dest, leg.amount)
        except TransferFailed:
            logger.error("compensation failed: %s", leg.describe(), exc_info=True)
            return False
        return True

    def _pull(self, asset_id: AssetId, owner: Address, amount: Amount, undo: UndoLog) -> None:
        if amount == 0:
            return
        self._transfer(asset_id, "transfer_from", owner, self._address, amount)
        undo.append(_Leg(asset_id, "transfer", self._address, owner, amount, payout=False))

    def _push(self, asset_id: AssetId, recipient: Address, amount: Amount, undo: UndoLog) -> None:
        if amount == 0:
            return
        self._transfer(asset_id, "transfer", self._address, recipient, amount)
        undo.append(_Leg(asset_id, "transfer_from", recipient, self._address, amount, payout=True))

    def _emit(self, event: PoolEvent) -> None:
        self._events.append(event)

    def __repr__(self) -> str:
        reserve_a, reserve_b = self._reserves.get()
        return (
            f"Pool(assets=({self._asset_a}, {self._asset_b}), "
            f"reserves=({reserve_a}, {reserve_b}), "
            f"total_shares={self._shares.total_shares}, status={self.status.value})"
        )
