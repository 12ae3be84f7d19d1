"""Invariant checkers for pool state.

Each function returns True when the invariant holds, and `check_all()` returns
the list of violated invariant names (empty = all pass).
"""

from __future__ import annotations

from typing import Callable

from ..state.reserves import ReserveLedger
from ..state.shares import ShareLedger


def inv_reserves_non_negative(reserves: ReserveLedger, shares: ShareLedger) -> bool:
    return reserves.reserve_a >= 0 and reserves.reserve_b >= 0


def inv_reserves_both_or_neither(reserves: ReserveLedger, shares: ShareLedger) -> bool:
    return (reserves.reserve_a == 0) == (reserves.reserve_b == 0)


def inv_shares_zero_iff_reserves_zero(reserves: ReserveLedger, shares: ShareLedger) -> bool:
    return (shares.total_shares == 0) == reserves.is_empty()


def inv_share_total_matches_balances(reserves: ReserveLedger, shares: ShareLedger) -> bool:
    return shares.verify_total()


def inv_share_balances_positive(reserves: ReserveLedger, shares: ShareLedger) -> bool:
    return all(amount > 0 for amount in shares.get_all_balances().values())


InvariantFn = Callable[[ReserveLedger, ShareLedger], bool]

ALL_INVARIANTS: tuple[tuple[str, InvariantFn], ...] = (
    ("reserves_non_negative", inv_reserves_non_negative),
    ("reserves_both_or_neither", inv_reserves_both_or_neither),
    ("shares_zero_iff_reserves_zero", inv_shares_zero_iff_reserves_zero),
    ("share_total_matches_balances", inv_share_total_matches_balances),
    ("share_balances_positive", inv_share_balances_positive),
)


def check_all(reserves: ReserveLedger, shares: ShareLedger) -> list[str]:
    """Return the names of all violated invariants."""
    return [name for name, fn in ALL_INVARIANTS if not fn(reserves, shares)]
