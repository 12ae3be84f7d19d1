"""Data types for the pool coordinator.

All records are frozen dataclasses. Amounts are plain ints in each asset's
own base units.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Optional


@unique
class PoolStatus(Enum):
    EMPTY = "EMPTY"
    SEEDED = "SEEDED"


@unique
class Event(Enum):
    """One member per observable pool event."""
    LIQUIDITY_ADDED = "LiquidityAdded"
    LIQUIDITY_REMOVED = "LiquidityRemoved"
    SWAP_EXECUTED = "SwapExecuted"


@dataclass(frozen=True)
class PoolEvent:
    """
    An emitted state change.

    `account` is the provider for liquidity events and the trader for swaps.
    Liquidity events leave the swap fields unset and vice versa.
    """

    event: Event
    account: str
    amount_a: int = 0
    amount_b: int = 0
    shares: int = 0
    amount_in: int = 0
    amount_out: int = 0
    input_asset: Optional[str] = None
    output_asset: Optional[str] = None

    def to_dict(self) -> dict[str, int | str]:
        if self.event is Event.SWAP_EXECUTED:
            return {
                "event": self.event.value,
                "trader": self.account,
                "amount_in": self.amount_in,
                "amount_out": self.amount_out,
                "input_asset": self.input_asset or "",
                "output_asset": self.output_asset or "",
            }
        shares_key = "shares_minted" if self.event is Event.LIQUIDITY_ADDED else "shares_burned"
        return {
            "event": self.event.value,
            "provider": self.account,
            "amount_a": self.amount_a,
            "amount_b": self.amount_b,
            shares_key: self.shares,
        }


@dataclass(frozen=True)
class DepositResult:
    amount_a: int
    amount_b: int
    shares_minted: int


@dataclass(frozen=True)
class WithdrawResult:
    amount_a: int
    amount_b: int
    shares_burned: int


@dataclass(frozen=True)
class SwapResult:
    amount_in: int
    amount_out: int
