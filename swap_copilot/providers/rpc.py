"""
JSON-RPC client with priority-ordered provider failover.

Each provider is tried up to ``max_retries`` times with exponential backoff
between attempts on the same provider; on exhaustion the next provider is
tried. Only when every provider has failed is ``RpcExhausted`` raised.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from ..config import settings
from ..core.errors import RpcError, RpcExhausted
from .base import Provider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RpcEndpoint:
    name: str
    url: str
    priority: int


class _BadStatus(Exception):
    pass


class RpcFailoverClient(Provider):
    """Issues JSON-RPC requests against the first healthy endpoint."""

    name = "rpc"
    unavailable_reason = "No RPC providers configured"

    def __init__(
        self,
        endpoints: Optional[Sequence[RpcEndpoint]] = None,
        timeout_s: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if endpoints is None:
            endpoints = [RpcEndpoint(**p) for p in settings.rpc_providers()]
        self.endpoints: List[RpcEndpoint] = sorted(
            (e for e in endpoints if e.url),
            key=lambda e: e.priority,
        )
        self.timeout_s = timeout_s if timeout_s is not None else settings.rpc_timeout_seconds
        self.max_retries = max_retries or settings.rpc_max_retries
        self.backoff_base = (
            backoff_base if backoff_base is not None else settings.rpc_backoff_base_seconds
        )
        self._transport = transport
        self._sleep = sleep
        self._ids = itertools.count(1)

    def primary_url(self) -> str:
        if not self.endpoints:
            raise RpcExhausted("No RPC providers configured")
        return self.endpoints[0].url

    async def ready(self) -> bool:
        return bool(self.endpoints)

    async def fetch_with_failover(
        self,
        payload: Dict[str, Any],
        max_retries: Optional[int] = None,
    ) -> Dict[str, Any]:
        """POST ``payload`` to providers in priority order until one answers 2xx."""

        if not self.endpoints:
            raise RpcExhausted("No RPC providers configured")

        retries = max_retries or self.max_retries
        last_error: Optional[BaseException] = None

        async with self._client() as client:
            for endpoint in self.endpoints:
                for attempt in range(1, retries + 1):
                    try:
                        response = await client.post(
                            endpoint.url,
                            json=payload,
                            headers={"Content-Type": "application/json"},
                        )
                        if not response.is_success:
                            raise _BadStatus(f"{endpoint.name} returned {response.status_code}")
                        return response.json()
                    except (httpx.HTTPError, _BadStatus, ValueError) as exc:
                        last_error = exc
                        # Never log the URL: it may embed an API key.
                        logger.warning(
                            "RPC attempt %d/%d failed for %s: %s",
                            attempt,
                            retries,
                            endpoint.name,
                            type(exc).__name__ if isinstance(exc, httpx.HTTPError) else exc,
                        )
                        if attempt < retries:
                            await self._sleep((2 ** attempt) * self.backoff_base)

        detail = str(last_error) if isinstance(last_error, _BadStatus) else type(last_error).__name__
        raise RpcExhausted(
            f"All RPC providers failed. Last error: {detail or 'Unknown error'}",
            last_error=last_error,
        )

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """JSON-RPC call. An ``error`` body raises ``RpcError`` without failover."""

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or [],
            "id": next(self._ids),
        }
        data = await self.fetch_with_failover(payload)

        if "error" in data and data["error"]:
            error = data["error"]
            if isinstance(error, dict):
                raise RpcError(error.get("code"), str(error.get("message", "")), error.get("data"))
            raise RpcError(None, str(error))

        return data.get("result")

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.call("eth_call", [{"to": to, "data": data}, block])

    async def check_health(self) -> List[Dict[str, Any]]:
        """Ping every provider concurrently with ``eth_blockNumber``."""

        payload = {"jsonrpc": "2.0", "method": "eth_blockNumber", "params": [], "id": 1}

        async with self._client() as client:

            async def ping(endpoint: RpcEndpoint) -> Dict[str, Any]:
                start = time.perf_counter()
                try:
                    response = await client.post(endpoint.url, json=payload)
                    status = "healthy" if response.is_success else "unhealthy"
                except httpx.HTTPError:
                    status = "unhealthy"
                return {
                    "provider": endpoint.name,
                    "status": status,
                    "latency": int((time.perf_counter() - start) * 1000),
                }

            return list(await asyncio.gather(*(ping(e) for e in self.endpoints)))

    async def _live_status(self) -> Dict[str, Any]:
        providers = await self.check_health()
        healthy = sum(1 for p in providers if p["status"] == "healthy")
        if healthy == len(providers):
            status = "healthy"
        elif healthy:
            status = "degraded"
        else:
            status = "unhealthy"
        return {"status": status, "providers": providers}


_rpc_client: Optional[RpcFailoverClient] = None


def get_rpc_client() -> RpcFailoverClient:
    global _rpc_client
    if _rpc_client is None:
        _rpc_client = RpcFailoverClient()
    return _rpc_client
