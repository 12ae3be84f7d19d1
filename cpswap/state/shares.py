"""
Liquidity share accounting for a single pool.

Shares are tracked separately from asset balances: one table per pool,
mapping provider -> share count, plus the running total supply.
"""

from __future__ import annotations

from typing import Dict

from ..errors import InsufficientShares
from .balances import Address, Amount


class ShareLedger:
    """
    Provider share balances and total supply.

    Notes:
    - Share balances are always non-negative.
    - Zero balances are omitted to keep the table sparse.
    - `total_shares == sum(balances)` holds after every public method.
    """

    def __init__(self) -> None:
        self._balances: Dict[Address, Amount] = {}
        self._total: Amount = 0

    @property
    def total_shares(self) -> Amount:
        return self._total

    def balance_of(self, provider: Address) -> Amount:
        """Share balance of `provider`. Returns 0 if not found."""
        return self._balances.get(provider, 0)

    def issue(self, provider: Address, amount: Amount) -> None:
        """Mint `amount` shares to `provider`."""
        if amount <= 0:
            raise ValueError(f"issued shares must be positive: {amount}")
        self._balances[provider] = self.balance_of(provider) + amount
        self._total += amount

    def redeem(self, provider: Address, amount: Amount) -> None:
        """
        Burn `amount` shares held by `provider`.

        Raises:
            InsufficientShares: If the provider holds fewer than `amount`
        """
        if amount < 0:
            raise ValueError(f"redeemed shares must be non-negative: {amount}")
        current = self.balance_of(provider)
        if current < amount:
            raise InsufficientShares(f"share balance {current} < {amount}")
        remaining = current - amount
        if remaining == 0:
            self._balances.pop(provider, None)
        else:
            self._balances[provider] = remaining
        self._total -= amount

    def get_all_balances(self) -> Dict[Address, Amount]:
        """Return all share balances."""
        return dict(self._balances)

    def restore(self, balances: Dict[Address, Amount]) -> None:
        """Replace the table wholesale (used for rollback and snapshot loading)."""
        for provider, amount in balances.items():
            if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
                raise ValueError(f"invalid share balance for {provider!r}: {amount!r}")
        self._balances = {p: a for p, a in balances.items() if a != 0}
        self._total = sum(self._balances.values())

    def verify_total(self) -> bool:
        """Verify the running total matches the sum of balances."""
        return self._total == sum(self._balances.values())

    def __repr__(self) -> str:
        return f"ShareLedger({len(self._balances)} providers, total={self._total})"
