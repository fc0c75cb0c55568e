"""
Fixed-window rate limiter backed by the injected cache.

A window opens on the first request from an identity and closes
``window_seconds`` later; the next request after that opens a new one.
Expired records are evicted lazily: each check has a small chance of sweeping
the store, so no background task is needed.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import asdict, dataclass
from typing import Callable, Optional

from ..errors import RateLimitExceeded
from ...cache import CacheBackend, InMemoryCache, build_cache
from ...config import settings
from ...logging_config import log_security_event

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """Per-identity request counter."""

    def __init__(
        self,
        cache: Optional[CacheBackend] = None,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
        sweep_probability: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        rand: Callable[[], float] = random.random,
    ):
        self.max_requests = max_requests or settings.rate_limit_max_requests
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self.sweep_probability = (
            settings.rate_limit_sweep_probability if sweep_probability is None else sweep_probability
        )
        self._clock = clock
        self._rand = rand
        self._cache = cache or InMemoryCache(default_ttl=self.window_seconds, clock=clock)
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(identity: str) -> str:
        return f"ratelimit:{identity}"

    async def check(
        self,
        identity: str,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
    ) -> RateLimitResult:
        limit = max_requests or self.max_requests
        window = window_seconds or self.window_seconds

        async with self._lock:
            now = self._clock()

            if self._rand() < self.sweep_probability:
                evicted = await self._cache.sweep()
                if evicted:
                    logger.debug("Evicted %d expired rate-limit records", evicted)

            raw = await self._cache.get(self._key(identity))
            record = RateLimitRecord(**raw) if raw else None

            if record is None or record.window_reset_at < now:
                record = RateLimitRecord(count=1, window_reset_at=now + window)
                await self._cache.set(self._key(identity), asdict(record), ttl=window)
                return RateLimitResult(allowed=True, remaining=limit - 1, reset_at=record.window_reset_at)

            if record.count >= limit:
                return RateLimitResult(allowed=False, remaining=0, reset_at=record.window_reset_at)

            record.count += 1
            await self._cache.set(
                self._key(identity),
                asdict(record),
                ttl=max(record.window_reset_at - now, 0.001),
            )
            return RateLimitResult(
                allowed=True,
                remaining=limit - record.count,
                reset_at=record.window_reset_at,
            )

    async def enforce(
        self,
        identity: str,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
    ) -> RateLimitResult:
        """Like ``check`` but raises ``RateLimitExceeded`` when over the limit."""

        result = await self.check(identity, max_requests, window_seconds)
        if not result.allowed:
            limit = max_requests or self.max_requests
            window = window_seconds or self.window_seconds
            log_security_event("rate_limit", identity, f"Exceeded {limit} requests per {window:g}s")
            raise RateLimitExceeded(
                identity=identity,
                limit=limit,
                window_seconds=window,
                retry_after=result.reset_at - self._clock(),
            )
        return result


# Singleton instance
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get the process-wide rate limiter."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(cache=build_cache(settings.rate_limit_window_seconds, "swap:"))
    return _rate_limiter
