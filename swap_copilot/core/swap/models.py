"""Typed models used by the swap subsystem."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Dict, Optional

from ..errors import UnknownTokenSymbol, ValidationError
from .constants import POOL_TOKEN_FOR_NATIVE, TOKENS
from ...config import settings


@dataclass(frozen=True)
class TokenVariant:
    """A concrete token a symbol can be quoted through."""

    key: str
    symbol: str
    address: str
    decimals: int
    is_native: bool = False

    @classmethod
    def from_symbol(cls, symbol: str) -> "TokenVariant":
        key = symbol.upper()
        token = TOKENS.get(key)
        if token is None:
            raise UnknownTokenSymbol(symbol)
        return cls(
            key=key,
            symbol=str(token["symbol"]),
            address=str(token["address"]),
            decimals=int(token["decimals"]),  # type: ignore[arg-type]
            is_native=bool(token.get("is_native", False)),
        )

    def pool_token(self) -> "TokenVariant":
        """The token the AMM pool actually holds (WETH for native ETH)."""
        if self.is_native:
            return TokenVariant.from_symbol(POOL_TOKEN_FOR_NATIVE)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _normalize_amount(amount: str) -> Decimal:
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount: {amount}") from None
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be a positive number")
    return value


@dataclass(frozen=True)
class Intent:
    """A validated trade request. Immutable: a change produces a new intent."""

    token_in_symbol: str
    token_out_symbol: str
    amount: str
    slippage_bps: int = field(default_factory=lambda: settings.default_slippage_bps)

    def __post_init__(self) -> None:
        token_in = (self.token_in_symbol or "").strip().upper()
        token_out = (self.token_out_symbol or "").strip().upper()
        for symbol in (token_in, token_out):
            if symbol not in TOKENS:
                raise UnknownTokenSymbol(symbol or "<empty>")
        if token_in == token_out:
            raise ValidationError("Input and output tokens must differ")

        amount = _normalize_amount(self.amount)

        if isinstance(self.slippage_bps, bool) or not isinstance(self.slippage_bps, int):
            raise ValidationError("Slippage must be an integer number of basis points")
        if not 0 <= self.slippage_bps <= settings.max_slippage_bps:
            raise ValidationError(
                f"Slippage must be between 0 and {settings.max_slippage_bps} basis points"
            )

        object.__setattr__(self, "token_in_symbol", token_in)
        object.__setattr__(self, "token_out_symbol", token_out)
        object.__setattr__(self, "amount", format(amount.normalize(), "f"))

    @property
    def amount_decimal(self) -> Decimal:
        return Decimal(self.amount)

    @property
    def request_key(self) -> str:
        return f"{self.token_in_symbol}:{self.token_out_symbol}:{self.amount}:{self.slippage_bps}"

    def with_slippage(self, slippage_bps: int) -> "Intent":
        return Intent(self.token_in_symbol, self.token_out_symbol, self.amount, slippage_bps)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Scale a decimal amount to integer base units, rounding down."""
    return int(amount.scaleb(decimals).to_integral_value(rounding=ROUND_FLOOR))


def compute_min_out(amount_out: int, slippage_bps: int) -> int:
    return amount_out * (10_000 - slippage_bps) // 10_000


@dataclass
class Quote:
    """Best executable route for an intent."""

    intent: Intent
    amount_in: int
    amount_out: int
    min_out: int
    fee_tier: int
    gas_estimate: int
    price: float
    price_impact: Optional[float]
    token_in: TokenVariant
    token_out: TokenVariant
    pool_token_in: TokenVariant
    pool_token_out: TokenVariant
    request_key: str = ""
    quoted_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not self.request_key:
            self.request_key = self.intent.request_key
        if self.min_out > self.amount_out:
            raise ValueError("min_out cannot exceed amount_out")

    def is_stale(self, now: Optional[float] = None, ttl: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        ttl = settings.quote_cache_ttl_seconds if ttl is None else ttl
        return now - self.quoted_at >= ttl

    @property
    def amount_out_decimal(self) -> Decimal:
        return Decimal(self.amount_out).scaleb(-self.pool_token_out.decimals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent.to_dict(),
            "amount_in": str(self.amount_in),
            "amount_out": str(self.amount_out),
            "min_out": str(self.min_out),
            "fee_tier": self.fee_tier,
            "gas_estimate": str(self.gas_estimate),
            "price": self.price,
            "price_impact": self.price_impact,
            "token_in": self.token_in.to_dict(),
            "token_out": self.token_out.to_dict(),
            "pool_token_in": self.pool_token_in.to_dict(),
            "pool_token_out": self.pool_token_out.to_dict(),
            "request_key": self.request_key,
            "quoted_at": self.quoted_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Quote":
        return cls(
            intent=Intent(**data["intent"]),
            amount_in=int(data["amount_in"]),
            amount_out=int(data["amount_out"]),
            min_out=int(data["min_out"]),
            fee_tier=int(data["fee_tier"]),
            gas_estimate=int(data["gas_estimate"]),
            price=float(data["price"]),
            price_impact=data.get("price_impact"),
            token_in=TokenVariant(**data["token_in"]),
            token_out=TokenVariant(**data["token_out"]),
            pool_token_in=TokenVariant(**data["pool_token_in"]),
            pool_token_out=TokenVariant(**data["pool_token_out"]),
            request_key=data["request_key"],
            quoted_at=float(data["quoted_at"]),
        )

    def to_response(self) -> Dict[str, Any]:
        """Wire shape of the get-quote endpoint."""

        def side(token: TokenVariant, pool: TokenVariant) -> Dict[str, Any]:
            return {
                "symbol": token.symbol,
                "address": token.address,
                "decimals": token.decimals,
                "poolAddress": pool.address,
                "poolDecimals": pool.decimals,
            }

        return {
            "expectedOutput": str(self.amount_out),
            "minOutput": str(self.min_out),
            "estimatedGas": str(self.gas_estimate),
            "feeTier": self.fee_tier,
            "price": self.price,
            "priceImpact": self.price_impact,
            "slippageBps": self.intent.slippage_bps,
            "tokenIn": side(self.token_in, self.pool_token_in),
            "tokenOut": side(self.token_out, self.pool_token_out),
            "quotedAt": self.quoted_at,
        }
