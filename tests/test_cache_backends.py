"""
Tests for the pluggable TTL caches.
"""

import pytest

from swap_copilot.cache import InMemoryCache, build_cache


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.mark.asyncio
async def test_entry_expires_at_ttl_boundary(clock: FakeClock):
    cache = InMemoryCache(default_ttl=30, clock=clock)
    await cache.set("quote:a", {"v": 1})

    clock.advance(29.9)
    assert await cache.get("quote:a") == {"v": 1}

    clock.advance(0.1)
    assert await cache.get("quote:a") is None


@pytest.mark.asyncio
async def test_explicit_ttl_overrides_default(clock: FakeClock):
    cache = InMemoryCache(default_ttl=300, clock=clock)
    await cache.set("k", "v", ttl=5)

    clock.advance(5)
    assert await cache.get("k") is None


@pytest.mark.asyncio
async def test_expire_drops_key(clock: FakeClock):
    cache = InMemoryCache(clock=clock)
    await cache.set("k", "v")
    await cache.expire("k")

    assert await cache.get("k") is None
    assert cache.size() == 0


@pytest.mark.asyncio
async def test_lru_eviction_keeps_recently_read(clock: FakeClock):
    cache = InMemoryCache(max_size=2, clock=clock)
    await cache.set("a", 1)
    await cache.set("b", 2)

    # Touch "a" so "b" is the least recently used
    assert await cache.get("a") == 1
    await cache.set("c", 3)

    assert await cache.get("a") == 1
    assert await cache.get("b") is None
    assert await cache.get("c") == 3


@pytest.mark.asyncio
async def test_sweep_evicts_only_expired(clock: FakeClock):
    cache = InMemoryCache(clock=clock)
    await cache.set("short", 1, ttl=1)
    await cache.set("long", 2, ttl=100)

    clock.advance(2)
    assert await cache.sweep() == 1
    assert cache.size() == 1
    assert await cache.get("long") == 2


def test_build_cache_defaults_to_in_memory(monkeypatch):
    from swap_copilot import cache as cache_module

    monkeypatch.setattr(cache_module.settings, "redis_url", "")

    assert isinstance(build_cache(30, "swap:"), InMemoryCache)
