"""
Asset-transfer collaborators consumed by the pool.

`AssetTransfer` is the interface a fungible asset must expose to the pool.
`LedgerAsset` is an in-memory implementation, one `AccountBook` per asset,
used by tests and the offline demo.
"""

from __future__ import annotations

import logging
from typing import Dict

from ..state.balances import AccountBook, Address, Amount, AssetId

logger = logging.getLogger(__name__)


class AssetTransfer:
    """
    Interface for moving one asset between accounts.

    Both methods return True on success. Returning False or raising are both
    treated as a failed transfer by the pool.
    """

    @property
    def asset_id(self) -> AssetId:
        raise NotImplementedError

    def transfer_from(self, owner: Address, recipient: Address, amount: Amount) -> bool:
        """Pull `amount` from `owner` into `recipient` (the pool pulling a deposit)."""
        raise NotImplementedError

    def transfer(self, sender: Address, recipient: Address, amount: Amount) -> bool:
        """Push `amount` from `sender` (the pool) to `recipient`."""
        raise NotImplementedError


class LedgerAsset(AssetTransfer):
    """
    An asset whose holdings live in its own `AccountBook`.

    Transfers that would overdraw the source account return False and leave
    every balance unchanged.
    """

    def __init__(self, asset_id: AssetId) -> None:
        if not isinstance(asset_id, str) or not asset_id:
            raise ValueError("asset_id must be a non-empty string")
        self._asset_id = asset_id
        self._book = AccountBook()

    @property
    def asset_id(self) -> AssetId:
        return self._asset_id

    def balance_of(self, account: Address) -> Amount:
        return self._book.balance_of(account)

    def holders(self) -> Dict[Address, Amount]:
        """Non-zero holdings by account."""
        return self._book.accounts()

    def mint(self, account: Address, amount: Amount) -> None:
        """Credit `amount` out of thin air (test/faucet helper)."""
        self._book.credit(account, amount)

    def _move(self, source: Address, dest: Address, amount: Amount) -> bool:
        if not isinstance(amount, int) or isinstance(amount, bool):
            return False
        if not self._book.debit(source, amount):
            logger.debug(
                "transfer rejected: asset=%s source=%s balance=%d amount=%d",
                self._asset_id, source, self.balance_of(source), amount,
            )
            return False
        self._book.credit(dest, amount)
        return True

    def transfer_from(self, owner: Address, recipient: Address, amount: Amount) -> bool:
        return self._move(owner, recipient, amount)

    def transfer(self, sender: Address, recipient: Address, amount: Amount) -> bool:
        return self._move(sender, recipient, amount)

    def __repr__(self) -> str:
        return f"LedgerAsset({self._asset_id!r})"
