from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx


class Provider(ABC):
    """An upstream HTTP service: RPC nodes, simulation or market data.

    Subclasses say whether they are usable with ``ready`` and may override
    ``_live_status`` to contact the service once they are.
    """

    name: str
    timeout_s: float = 10
    unavailable_reason: str = "Provider not configured"
    _transport: Optional[httpx.AsyncBaseTransport] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport)

    @abstractmethod
    async def ready(self) -> bool:
        """True when credentials or endpoints are present."""

    async def _live_status(self) -> Dict[str, Any]:
        return {"status": "configured"}

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "unavailable", "reason": self.unavailable_reason}
        return await self._live_status()
