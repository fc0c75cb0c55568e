from .logging_middleware import RequestLoggingMiddleware
from .rate_limit import (
    RateLimitMiddleware,
    client_identity,
)

__all__ = [
    "RequestLoggingMiddleware",
    "RateLimitMiddleware",
    "client_identity",
]
