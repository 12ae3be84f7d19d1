"""Exception types for the cpswap pool engine.

Every rejection is raised synchronously, before any observable state change.
Each class carries a stable ``code`` string for callers that report errors
over a wire or in logs.
"""

from __future__ import annotations


class PoolError(ValueError):
    """Base class for all pool rejections."""

    code = "pool_error"


class Expired(PoolError):
    """Raised when the caller's deadline has passed."""

    code = "expired"


class InvalidRecipient(PoolError):
    code = "invalid_recipient"


class InvalidAmount(PoolError):
    """Raised for negative amounts or a zero share count on withdrawal."""

    code = "invalid_amount"


class SlippageExceeded(PoolError):
    """Raised when a computed amount is below the caller's minimum."""

    code = "slippage_exceeded"


class InsufficientAAmount(PoolError):
    """Raised when no ratio-preserving deposit fits inside the desired amounts."""

    code = "insufficient_a_amount"


class InsufficientLiquidityMinted(PoolError):
    code = "insufficient_liquidity_minted"


class InsufficientShares(PoolError):
    code = "insufficient_shares"


class InvalidTokenPath(PoolError):
    code = "invalid_token_path"


class InvalidTokens(PoolError):
    code = "invalid_tokens"


class NoLiquidity(PoolError):
    code = "no_liquidity"


class InsufficientLiquidity(PoolError):
    code = "insufficient_liquidity"


class InvalidSwapInput(PoolError):
    code = "invalid_swap_input"


class TransferFailed(PoolError):
    """Raised when an asset collaborator reports (or raises) a failed transfer."""

    code = "transfer_failed"


class RollbackIncomplete(TransferFailed):
    """
    Raised when a failed operation could not reverse every completed transfer.

    `unrecovered` lists one description per transfer that stayed in place.
    Reserves already account for unrecovered payouts.
    """

    code = "rollback_incomplete"

    def __init__(self, message: str, unrecovered: list[str]) -> None:
        self.unrecovered = unrecovered
        super().__init__(f"{message}; unrecovered: {', '.join(unrecovered)}")


class ReentrantCall(PoolError):
    """Raised when a mutating operation is entered while another is in flight on the same thread."""

    code = "reentrant_call"


class PoolInvariantError(PoolError):
    """Raised when a post-state violates one or more invariants."""

    code = "invariant_violation"

    def __init__(self, violations: list[str]) -> None:
        self.violations = violations
        super().__init__(f"invariant violations: {', '.join(violations)}")
