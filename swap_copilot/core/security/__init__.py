"""
Security Gate

Input screening, per-caller rate limiting, and server-side address
derivation. Nothing client-supplied reaches a transaction without passing
through here.
"""

from .gate import (
    InputValidation,
    MAX_INPUT_LENGTH,
    validate_input,
    derive_token_address,
    validate_contract_address,
    validate_swap_addresses,
)

from .rate_limit import (
    RateLimiter,
    RateLimitRecord,
    RateLimitResult,
    get_rate_limiter,
)

__all__ = [
    "InputValidation",
    "MAX_INPUT_LENGTH",
    "validate_input",
    "derive_token_address",
    "validate_contract_address",
    "validate_swap_addresses",
    "RateLimiter",
    "RateLimitRecord",
    "RateLimitResult",
    "get_rate_limiter",
]
