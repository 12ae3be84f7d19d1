"""
cpswap: a two-asset constant-product liquidity pool with integer-only accounting.
"""

from .core import PRICE_SCALE, Pool, quote, quote_amount_in
from .errors import PoolError

__version__ = "0.1.0"

__all__ = [
    "PRICE_SCALE",
    "Pool",
    "PoolError",
    "quote",
    "quote_amount_in",
]
