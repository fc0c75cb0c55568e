"""
Error taxonomy for the swap engine.

Every error raised across module boundaries derives from ``SwapError`` and
carries a ``safe_message`` that can be shown to the caller verbatim. The raw
``str(exc)`` may contain provider URLs or RPC payloads and must stay in logs.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Categories used for HTTP mapping and log filtering."""

    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    SECURITY = "security"
    LIQUIDITY = "liquidity"
    PROVIDER = "provider"
    SIMULATION = "simulation"
    STATE = "state"
    UNKNOWN = "unknown"


class SimulationErrorCategory(str, Enum):
    """User-facing buckets for simulation reverts."""

    INSUFFICIENT_FUNDS = "insufficient_funds"
    WOULD_REVERT = "would_revert"
    SLIPPAGE = "slippage"
    INSUFFICIENT_LIQUIDITY = "insufficient_liquidity"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    MISSING_APPROVAL = "missing_approval"
    UNKNOWN = "unknown"


SIMULATION_MESSAGES = {
    SimulationErrorCategory.INSUFFICIENT_FUNDS: "Insufficient balance to complete this swap",
    SimulationErrorCategory.WOULD_REVERT: "Transaction would revert on-chain",
    SimulationErrorCategory.SLIPPAGE: "Price moved beyond your slippage tolerance; refresh the quote or raise slippage",
    SimulationErrorCategory.INSUFFICIENT_LIQUIDITY: "Not enough liquidity in the pool for this trade size",
    SimulationErrorCategory.DEADLINE_EXCEEDED: "Transaction deadline passed; refresh the quote",
    SimulationErrorCategory.MISSING_APPROVAL: "Token approval is required before swapping",
    SimulationErrorCategory.UNKNOWN: "Simulation failed",
}


class SwapError(Exception):
    """Base class for all engine errors."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    status_code: int = 500
    default_safe_message: str = "An unexpected error occurred. Please try again."

    def __init__(self, message: str, safe_message: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.safe_message = safe_message or self.default_safe_message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.safe_message, "category": self.category.value}


class ValidationError(SwapError):
    """Malformed, oversized or unsafe input. The reason is shown verbatim."""

    category = ErrorCategory.VALIDATION
    status_code = 400

    def __init__(self, reason: str):
        super().__init__(reason, safe_message=reason)
        self.reason = reason


class RateLimitExceeded(SwapError):
    """Caller exceeded its request budget for the current window."""

    category = ErrorCategory.RATE_LIMIT
    status_code = 429

    def __init__(self, identity: str, limit: int, window_seconds: float, retry_after: float):
        self.identity = identity
        self.limit = limit
        self.window_seconds = window_seconds
        self.retry_after = max(0.0, retry_after)
        super().__init__(
            f"Rate limit exceeded for {identity}: {limit} requests per {window_seconds:g}s",
            safe_message=f"Rate limit exceeded. Try again in {int(self.retry_after + 0.999)} seconds.",
        )


class UnknownTokenSymbol(SwapError):
    category = ErrorCategory.VALIDATION
    status_code = 400

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Unknown token symbol: {symbol}", safe_message=f"Unsupported token: {symbol}")


class SecurityViolation(SwapError):
    """An address outside the contract whitelist reached the transaction path."""

    category = ErrorCategory.SECURITY
    status_code = 403

    def __init__(self, message: str, value: Optional[str] = None):
        self.value = value
        super().__init__(message, safe_message=message)


class NoLiquidity(SwapError):
    category = ErrorCategory.LIQUIDITY
    status_code = 404
    default_safe_message = "No liquidity available for this pair"


class RpcExhausted(SwapError):
    """Every RPC provider failed after all retries."""

    category = ErrorCategory.PROVIDER
    status_code = 502
    default_safe_message = "Network error. Please check your connection and try again."

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        self.last_error = last_error
        super().__init__(message)


class RpcError(SwapError):
    """The endpoint answered with a JSON-RPC error body (for eth_call, usually a revert)."""

    category = ErrorCategory.PROVIDER
    status_code = 502
    default_safe_message = "Network error. Please check your connection and try again."

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        self.code = code
        self.data = data
        super().__init__(f"RPC error {code}: {message}")


class SimulationFailure(SwapError):
    """The simulation ran and the transaction would fail."""

    category = ErrorCategory.SIMULATION
    status_code = 422

    def __init__(self, error_category: SimulationErrorCategory, raw_message: Optional[str] = None):
        self.error_category = error_category
        self.raw_message = raw_message
        super().__init__(
            f"Simulation failed ({error_category.value}): {raw_message or 'no revert reason'}",
            safe_message=SIMULATION_MESSAGES[error_category],
        )


class SimulationUnavailable(SwapError):
    """The simulation service could not be reached or is not configured."""

    category = ErrorCategory.SIMULATION
    status_code = 502
    default_safe_message = "Simulation service is unavailable. Please try again shortly."


class StaleQuote(SwapError):
    category = ErrorCategory.STATE
    status_code = 409
    default_safe_message = "Quote expired. Fetch a fresh quote before continuing."


class InvalidTransitionError(SwapError):
    """Raised when a lifecycle event is not allowed from the current step."""

    category = ErrorCategory.STATE
    status_code = 409

    def __init__(self, from_step: str, event: str):
        self.from_step = from_step
        self.event = event
        super().__init__(
            f"Invalid transition: {event} is not allowed from {from_step}",
            safe_message=f"Cannot {event.replace('_', ' ')} right now",
        )


_SECRET_PATTERN = re.compile(r"api[\s_-]?key|secret|access[\s_-]?key|private[\s_-]?key", re.IGNORECASE)
_FUNDS_PATTERN = re.compile(r"insufficient funds", re.IGNORECASE)
_NETWORK_PATTERN = re.compile(r"network|rpc|timeout|timed out|connect", re.IGNORECASE)


def sanitize_error_message(error: BaseException) -> str:
    """Map any exception to a message that is safe to return to a client."""

    if isinstance(error, SwapError):
        return error.safe_message

    message = str(error)
    if _SECRET_PATTERN.search(message):
        return "An internal error occurred. Please try again."
    if _FUNDS_PATTERN.search(message):
        return "Insufficient balance to complete this transaction."
    if _NETWORK_PATTERN.search(message):
        return "Network error. Please check your connection and try again."
    return "An unexpected error occurred. Please try again."
