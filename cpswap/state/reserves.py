"""
Reserve ledger: the pool's current holdings of its two assets.

This is a trusted accumulator. Only the pool coordinator mutates it, and only
after the matching asset transfers went through.
"""

from __future__ import annotations

from typing import Tuple

from .balances import Amount


class ReserveLedger:
    def __init__(self, reserve_a: Amount = 0, reserve_b: Amount = 0) -> None:
        self._reserve_a: Amount = 0
        self._reserve_b: Amount = 0
        self.restore(reserve_a, reserve_b)

    @property
    def reserve_a(self) -> Amount:
        return self._reserve_a

    @property
    def reserve_b(self) -> Amount:
        return self._reserve_b

    def get(self) -> Tuple[Amount, Amount]:
        return self._reserve_a, self._reserve_b

    def is_empty(self) -> bool:
        return self._reserve_a == 0 and self._reserve_b == 0

    def apply_delta(self, delta_a: int, delta_b: int) -> None:
        """
        Shift both reserves by signed deltas.

        Raises:
            ValueError: If either reserve would go negative (nothing changes)
        """
        new_a = self._reserve_a + delta_a
        new_b = self._reserve_b + delta_b
        if new_a < 0 or new_b < 0:
            raise ValueError(
                f"reserves cannot go negative: ({self._reserve_a}{delta_a:+d}, {self._reserve_b}{delta_b:+d})"
            )
        self._reserve_a = new_a
        self._reserve_b = new_b

    def restore(self, reserve_a: Amount, reserve_b: Amount) -> None:
        """Overwrite both reserves (rollback / snapshot loading)."""
        for name, v in (("reserve_a", reserve_a), ("reserve_b", reserve_b)):
            if not isinstance(v, int) or isinstance(v, bool):
                raise TypeError(f"{name} must be an int")
            if v < 0:
                raise ValueError(f"{name} must be non-negative: {v}")
        self._reserve_a = reserve_a
        self._reserve_b = reserve_b

    def constant_product(self) -> int:
        """k = reserve_a * reserve_b."""
        return self._reserve_a * self._reserve_b

    def __repr__(self) -> str:
        return f"ReserveLedger(reserves=({self._reserve_a}, {self._reserve_b}))"
