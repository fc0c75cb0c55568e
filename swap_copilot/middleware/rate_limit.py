"""
Rate limiting middleware.

Fixed-window limit per caller identity, backed by the shared RateLimiter so
the HTTP surface and library callers draw from the same budget store.
"""

import math
from typing import Awaitable, Callable, Optional, Sequence

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp

from ..core.errors import RateLimitExceeded
from ..core.security.rate_limit import RateLimiter, get_rate_limiter

DEFAULT_EXCLUDE_PATHS = ("/docs", "/redoc", "/openapi.json", "/healthz")


def client_identity(request: Request) -> str:
    """First hop of X-Forwarded-For, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    if request.client and request.client.host:
        return request.client.host
    return "anonymous"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Reject callers over their request budget with 429."""

    def __init__(
        self,
        app: ASGIApp,
        rate_limiter: Optional[RateLimiter] = None,
        exclude_paths: Optional[Sequence[str]] = None,
    ):
        super().__init__(app)
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.exclude_paths = tuple(DEFAULT_EXCLUDE_PATHS if exclude_paths is None else exclude_paths)

    def _is_excluded(self, path: str) -> bool:
        # "/" alone would prefix-match every route
        return path == "/" or any(path.startswith(p) for p in self.exclude_paths)

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method == "OPTIONS" or self._is_excluded(request.url.path):
            return await call_next(request)

        try:
            result = await self.rate_limiter.enforce(client_identity(request))
        except RateLimitExceeded as e:
            retry_after = max(1, math.ceil(e.retry_after))
            return JSONResponse(
                {"error": e.safe_message, "retryAfter": retry_after},
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(e.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Window": f"{e.window_seconds:g}",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.rate_limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(int(result.reset_at))
        return response
