"""
Tests for the Tenderly and Coingecko providers over httpx.MockTransport.
"""

import json

import httpx
import pytest

from swap_copilot.core.errors import SimulationUnavailable
from swap_copilot.providers.coingecko import CoingeckoProvider
from swap_copilot.providers.tenderly import TenderlyProvider

ROUTER = "0x2626664c2603336E57B271c5C0b26F421741e481"
WALLET = "0x1234567890123456789012345678901234567890"


def tenderly(handler) -> TenderlyProvider:
    return TenderlyProvider(
        account="acct",
        project="proj",
        access_key="tk-secret",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_tenderly_request_shape():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["key"] = request.headers.get("X-Access-Key")
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"transaction": {"status": True, "gas_used": 120000}})

    transaction = await tenderly(handler).simulate(WALLET, ROUTER, "0x04e45aaf", value=10**18)

    assert transaction == {"status": True, "gas_used": 120000}
    assert captured["url"].endswith("/account/acct/project/proj/simulate")
    assert captured["key"] == "tk-secret"
    assert captured["body"] == {
        "network_id": "8453",
        "from": WALLET,
        "to": ROUTER,
        "input": "0x04e45aaf",
        "value": str(10**18),
        "save": False,
        "simulation_type": "quick",
    }


@pytest.mark.asyncio
async def test_tenderly_not_configured():
    provider = TenderlyProvider(account="", project="", access_key="")

    assert await provider.ready() is False
    with pytest.raises(SimulationUnavailable):
        await provider.simulate(WALLET, ROUTER, "0x")
    assert await provider.health_check() == {
        "status": "unavailable",
        "reason": "Tenderly credentials not configured",
    }
    assert await tenderly(lambda request: httpx.Response(500)).health_check() == {"status": "configured"}


@pytest.mark.asyncio
async def test_tenderly_http_error_is_unavailable():
    provider = tenderly(lambda request: httpx.Response(500, text="internal"))

    with pytest.raises(SimulationUnavailable) as exc_info:
        await provider.simulate(WALLET, ROUTER, "0x")

    assert "internal" not in exc_info.value.safe_message


@pytest.mark.asyncio
async def test_tenderly_missing_transaction_is_unavailable():
    provider = tenderly(lambda request: httpx.Response(200, json={"simulation": {}}))

    with pytest.raises(SimulationUnavailable):
        await provider.simulate(WALLET, ROUTER, "0x")


@pytest.mark.asyncio
async def test_coingecko_market_context_and_cache(monkeypatch):
    from swap_copilot.providers import coingecko as coingecko_module

    monkeypatch.setattr(coingecko_module.settings, "enable_coingecko", True)
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.params["ids"])
        return httpx.Response(
            200,
            json={
                "ethereum": {"usd": 3500.0, "usd_24h_change": -12.5, "usd_24h_vol": 1e9},
                "usd-coin": {"usd": 1.0, "usd_24h_change": 0.01},
            },
        )

    provider = CoingeckoProvider(transport=httpx.MockTransport(handler))
    context = await provider.get_market_context(["ETH", "USDC"])

    assert context.price_of("ETH") == 3500.0
    assert context.change_of("eth") == -12.5
    assert context.price_of("WETH") is None
    assert "ethereum" in calls[0] and "usd-coin" in calls[0]

    # A different pair inside the cache window is served from the same snapshot
    again = await provider.get_market_context(["USDC", "ETH"])
    assert again is context
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_coingecko_failure_degrades_to_empty_context(monkeypatch):
    from swap_copilot.providers import coingecko as coingecko_module

    monkeypatch.setattr(coingecko_module.settings, "enable_coingecko", True)
    provider = CoingeckoProvider(transport=httpx.MockTransport(lambda request: httpx.Response(429)))

    context = await provider.get_market_context(["ETH"])

    assert context.prices == {}
    assert context.volatility == "low"


@pytest.mark.asyncio
async def test_coingecko_health_pings_only_when_enabled(monkeypatch):
    from swap_copilot.providers import coingecko as coingecko_module

    pinged = []

    def handler(request: httpx.Request) -> httpx.Response:
        pinged.append(request.url.path)
        return httpx.Response(200, json={"gecko_says": "(V3) To the Moon!"})

    provider = CoingeckoProvider(transport=httpx.MockTransport(handler))

    monkeypatch.setattr(coingecko_module.settings, "enable_coingecko", False)
    assert await provider.health_check() == {"status": "unavailable", "reason": "Provider disabled"}
    assert pinged == []

    monkeypatch.setattr(coingecko_module.settings, "enable_coingecko", True)
    health = await provider.health_check()
    assert health["status"] == "healthy"
    assert pinged == ["/api/v3/ping"]
