"""Market context and conversion of a quote into classifier inputs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol

from .models import RiskInput
from ..swap.constants import STABLE_SYMBOLS
from ..swap.models import Quote
from ...config import Settings, settings as default_settings

ETH_LIKE = frozenset({"ETH", "WETH"})


@dataclass(frozen=True)
class TokenPrice:
    symbol: str
    price: float
    change_24h: float = 0.0
    volume_24h: float = 0.0


@dataclass
class MarketContext:
    prices: Dict[str, TokenPrice] = field(default_factory=dict)

    def price_of(self, symbol: str) -> Optional[float]:
        token = self.prices.get(symbol.upper())
        return token.price if token and token.price > 0 else None

    def change_of(self, symbol: str) -> Optional[float]:
        token = self.prices.get(symbol.upper())
        return token.change_24h if token else None

    @property
    def volatility(self) -> str:
        if not self.prices:
            return "low"
        avg = sum(abs(p.change_24h) for p in self.prices.values()) / len(self.prices)
        if avg > 10:
            return "high"
        if avg > 5:
            return "medium"
        return "low"


class MarketDataSource(Protocol):
    async def get_market_context(self, symbols: list[str]) -> MarketContext:
        ...


def gas_cost_usd(gas_units: int, eth_price_usd: float, gas_price_gwei: float) -> float:
    """Gas units to USD at a fixed gas price (no live oracle)."""
    return gas_units * gas_price_gwei / 1e9 * eth_price_usd


def build_risk_input(
    quote: Quote,
    market: Optional[MarketContext] = None,
    settings: Settings = default_settings,
) -> RiskInput:
    market = market or MarketContext()
    intent = quote.intent
    eth_price = market.price_of("ETH") or settings.fallback_eth_price_usd

    amount_in = float(intent.amount_decimal)
    if intent.token_in_symbol in STABLE_SYMBOLS:
        amount_usd: Optional[float] = amount_in
    elif intent.token_in_symbol in ETH_LIKE:
        amount_usd = amount_in * eth_price
    elif intent.token_out_symbol in STABLE_SYMBOLS:
        amount_usd = float(quote.amount_out_decimal)
    else:
        amount_usd = None

    volatile_leg = next(
        (s for s in (intent.token_in_symbol, intent.token_out_symbol) if s not in STABLE_SYMBOLS),
        None,
    )
    volatility = market.change_of(volatile_leg) if volatile_leg else None

    return RiskInput(
        slippage_pct=intent.slippage_bps / 100,
        amount_usd=amount_usd,
        price_impact=quote.price_impact,
        market_volatility=volatility,
        pool_liquidity_usd=None,
        gas_estimate_usd=gas_cost_usd(quote.gas_estimate, eth_price, settings.base_gas_price_gwei),
    )
