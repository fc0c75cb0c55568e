"""Pluggable TTL caches shared by the quote aggregator and the rate limiter.

``InMemoryCache`` is process-local and only correct for a single instance;
``RedisCache`` is the shared store for multi-instance deployments.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis

from .config import settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CacheBackend(ABC):
    """Minimal key/value contract: get, set with TTL, expire."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...

    @abstractmethod
    async def expire(self, key: str) -> None:
        """Drop ``key`` immediately."""

    async def sweep(self) -> int:
        """Evict expired entries; returns how many were removed."""
        return 0

    async def clear(self) -> None:
        ...


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


class InMemoryCache(CacheBackend):
    """Simple in-memory TTL cache with LRU eviction"""

    def __init__(
        self,
        default_ttl: float = 300,
        max_size: int = 1000,
        clock: Clock = time.time,
    ):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._access_order: list = []
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            now = self._clock()

            if key not in self._cache:
                return None

            entry = self._cache[key]
            if now >= entry.expires_at:
                self._drop(key)
                return None

            if key in self._access_order:
                self._access_order.remove(key)
            self._access_order.append(key)

            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        async with self._lock:
            ttl = ttl or self.default_ttl
            expires_at = self._clock() + ttl

            self._cache[key] = CacheEntry(value=value, expires_at=expires_at)

            if key in self._access_order:
                self._access_order.remove(key)
            self._access_order.append(key)

            while len(self._cache) > self.max_size:
                oldest_key = self._access_order.pop(0)
                self._cache.pop(oldest_key, None)

    async def expire(self, key: str) -> None:
        async with self._lock:
            self._drop(key)

    async def sweep(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._cache.items() if now >= entry.expires_at]
            for key in expired:
                self._drop(key)
            return len(expired)

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()
            self._access_order.clear()

    def size(self) -> int:
        return len(self._cache)

    def _drop(self, key: str) -> None:
        self._cache.pop(key, None)
        if key in self._access_order:
            self._access_order.remove(key)


def _default_serializer(value: Any) -> str:
    def _encode(obj: Any) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return str(obj)
        raise TypeError(f"Unserialisable cache value: {type(obj).__name__}")

    return json.dumps(value, default=_encode)


def _default_deserializer(raw: Optional[str]) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("Discarding undecodable cache payload")
        return None


class RedisCache(CacheBackend):
    """Redis-backed cache; values must be JSON serialisable."""

    def __init__(self, client: "redis.Redis", default_ttl: float = 300, prefix: str = "swap:"):
        self._client = client
        self.default_ttl = default_ttl
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisCache":
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, **kwargs)

    async def get(self, key: str) -> Optional[Any]:
        payload = await self._client.get(self._prefix + key)
        return _default_deserializer(payload)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = ttl or self.default_ttl
        # Redis PX needs integer milliseconds and at least 1
        await self._client.set(
            self._prefix + key,
            _default_serializer(value),
            px=max(1, int(ttl * 1000)),
        )

    async def expire(self, key: str) -> None:
        await self._client.delete(self._prefix + key)

    async def clear(self) -> None:
        async for key in self._client.scan_iter(match=f"{self._prefix}*"):
            await self._client.delete(key)


def build_cache(default_ttl: float, prefix: str) -> CacheBackend:
    """Shared Redis cache when configured, otherwise a process-local one."""

    if settings.redis_url:
        logger.info("Using Redis cache for %s", prefix.rstrip(":"))
        return RedisCache.from_url(settings.redis_url, default_ttl=default_ttl, prefix=prefix)
    return InMemoryCache(default_ttl=default_ttl, max_size=settings.max_cache_size)
