"""
State containers for a cpswap pool
"""

from .balances import AccountBook
from .reserves import ReserveLedger
from .shares import ShareLedger

__all__ = [
    "AccountBook",
    "ReserveLedger",
    "ShareLedger",
]
