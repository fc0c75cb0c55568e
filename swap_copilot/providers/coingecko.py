import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.risk.market import MarketContext, TokenPrice
from .base import Provider

logger = logging.getLogger(__name__)

COINGECKO_IDS: Dict[str, str] = {
    "ETH": "ethereum",
    "WETH": "weth",
    "USDC": "usd-coin",
    "USDBC": "bridged-usd-coin-base",
}


class CoingeckoProvider(Provider):
    """Coingecko API provider for spot prices and 24h change"""

    name = "coingecko"
    unavailable_reason = "Provider disabled"
    timeout_s = 15
    cache_seconds = 30

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = settings.coingecko_api_key
        self.base_url = "https://api.coingecko.com/api/v3"
        self._transport = transport
        self._cached: Optional[MarketContext] = None
        self._cached_at = 0.0

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["X-CG-Demo-API-Key"] = self.api_key
        return headers

    async def ready(self) -> bool:
        return settings.enable_coingecko  # API key is optional for basic tier

    async def _live_status(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/ping",
                    headers=self._build_headers(),
                )
                response.raise_for_status()
                return {"status": "healthy", "latency_ms": int(response.elapsed.total_seconds() * 1000)}
        except httpx.HTTPError as e:
            return {"status": "error", "reason": type(e).__name__}

    async def get_market_context(self, symbols: List[str]) -> MarketContext:
        """Prices and 24h change for ``symbols``. Degrades to an empty context."""

        now = time.monotonic()
        if self._cached is not None and now - self._cached_at < self.cache_seconds:
            return self._cached

        if not await self.ready():
            return MarketContext()

        if not any(s.upper() in COINGECKO_IDS for s in symbols):
            return MarketContext()

        # The token set is tiny, so fetch all of it and let one cached context serve any pair.
        params = {
            "ids": ",".join(sorted(COINGECKO_IDS.values())),
            "vs_currencies": "usd",
            "include_24hr_change": "true",
            "include_24hr_vol": "true",
        }

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self.base_url}/simple/price",
                    headers=self._build_headers(),
                    params=params,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Coingecko market data unavailable: %s", type(e).__name__)
            return MarketContext()

        prices: Dict[str, TokenPrice] = {}
        for symbol, coin_id in COINGECKO_IDS.items():
            entry = data.get(coin_id)
            if not entry:
                continue
            prices[symbol] = TokenPrice(
                symbol=symbol,
                price=float(entry.get("usd") or 0),
                change_24h=float(entry.get("usd_24h_change") or 0),
                volume_24h=float(entry.get("usd_24h_vol") or 0),
            )

        context = MarketContext(prices=prices)
        self._cached, self._cached_at = context, now
        return context
