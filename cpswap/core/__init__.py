"""
Core pool algorithms
"""

from .cpmm import PRICE_SCALE, optimal_deposit, quote, quote_amount_in, spot_price
from .isqrt import isqrt
from .liquidity import compute_shares_minted, compute_withdraw_amounts
from .pool import Pool
from .types import DepositResult, Event, PoolEvent, PoolStatus, SwapResult, WithdrawResult

__all__ = [
    "PRICE_SCALE",
    "optimal_deposit",
    "quote",
    "quote_amount_in",
    "spot_price",
    "isqrt",
    "compute_shares_minted",
    "compute_withdraw_amounts",
    "Pool",
    "DepositResult",
    "Event",
    "PoolEvent",
    "PoolStatus",
    "SwapResult",
    "WithdrawResult",
]
