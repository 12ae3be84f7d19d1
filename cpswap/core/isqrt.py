"""
Integer square root.

Used once per pool lifetime cycle: to size the first share issuance as the
geometric mean of the two deposits.
"""

from __future__ import annotations

import math


def _require_int(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")


def isqrt(n: int) -> int:
    """
    Return floor(sqrt(n)) for a non-negative integer.

    Exact for arbitrarily large inputs; never goes through a float.
    """
    _require_int("n", n)
    if n < 0:
        raise ValueError(f"isqrt of negative number: {n}")
    return math.isqrt(n)
