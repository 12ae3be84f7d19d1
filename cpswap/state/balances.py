"""
Account holdings for one in-memory asset, plus the scalar aliases the ledgers share.
"""

from __future__ import annotations

from typing import Dict


Address = str  # Account identifier on an asset ledger
AssetId = str  # Asset identifier (opaque, non-empty)
Amount = int  # Non-negative integer, unit-agnostic


class AccountBook:
    """
    account -> amount for a single asset.

    Accounts at zero are not stored. `debit` refuses to overdraw and reports
    that with its return value, the way an asset ledger refuses a transfer.
    """

    def __init__(self) -> None:
        self._held: Dict[Address, Amount] = {}

    def balance_of(self, account: Address) -> Amount:
        return self._held.get(account, 0)

    def credit(self, account: Address, amount: Amount) -> None:
        if amount < 0:
            raise ValueError(f"credit amount must be non-negative: {amount}")
        if amount:
            self._held[account] = self.balance_of(account) + amount

    def debit(self, account: Address, amount: Amount) -> bool:
        held = self.balance_of(account)
        if amount < 0 or held < amount:
            return False
        if held == amount:
            self._held.pop(account, None)
        else:
            self._held[account] = held - amount
        return True

    def accounts(self) -> Dict[Address, Amount]:
        return dict(self._held)
