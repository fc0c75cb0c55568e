"""
Tests for the rate limiting and request logging middleware.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from swap_copilot.core.security.rate_limit import RateLimiter
from swap_copilot.middleware import RateLimitMiddleware, RequestLoggingMiddleware


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_client(limiter: RateLimiter) -> TestClient:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, rate_limiter=limiter)
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/ping")
    async def ping():
        return {"ok": True}

    @app.get("/healthz")
    async def healthz():
        return {"status": "healthy"}

    return TestClient(app)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def client(clock):
    limiter = RateLimiter(max_requests=2, window_seconds=60, sweep_probability=0, clock=clock)
    return make_client(limiter)


def test_budget_headers(client):
    first = client.get("/ping")
    second = client.get("/ping")

    assert first.headers["X-RateLimit-Limit"] == "2"
    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert first.headers["X-RateLimit-Reset"] == "1060"
    assert second.headers["X-RateLimit-Remaining"] == "0"


def test_over_budget_is_rejected(client, clock):
    client.get("/ping")
    client.get("/ping")
    clock.now += 15

    response = client.get("/ping")

    assert response.status_code == 429
    assert response.json() == {"error": "Rate limit exceeded. Try again in 45 seconds.", "retryAfter": 45}
    assert response.headers["Retry-After"] == "45"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert response.headers["X-RateLimit-Window"] == "60"


def test_new_window_restores_budget(client, clock):
    for _ in range(3):
        client.get("/ping")
    clock.now += 61

    assert client.get("/ping").status_code == 200


def test_identities_are_separate(client):
    client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"})
    client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"})

    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200


def test_excluded_paths_are_free(client):
    for _ in range(5):
        response = client.get("/healthz")
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers


def test_request_id_is_echoed(client):
    response = client.get("/ping", headers={"X-Request-ID": "abc123"})

    assert response.headers["x-request-id"] == "abc123"


def test_request_id_is_generated(client):
    response = client.get("/ping")

    assert len(response.headers["x-request-id"]) == 8


def test_health_polls_log_quietly(client, monkeypatch):
    from swap_copilot.middleware import logging_middleware

    seen = []

    class Recorder:
        def __getattr__(self, level):
            return lambda event, **fields: seen.append((level, fields["path"], fields["status"]))

    monkeypatch.setattr(logging_middleware, "logger", Recorder())

    client.get("/healthz")
    client.get("/ping", headers={"X-Forwarded-For": "10.0.0.9"})
    client.get("/missing")

    assert seen == [("debug", "/healthz", 200), ("info", "/ping", 200), ("warning", "/missing", 404)]
