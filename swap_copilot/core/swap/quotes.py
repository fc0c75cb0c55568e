"""
Best-price search across token variants and fee tiers.

Every (input variant, output variant, fee tier) combination is priced with a
QuoterV2 ``quoteExactInputSingle`` read. The combination with the strictly
greatest output wins, so ties keep whichever was found first. Results are
cached per request key.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import NoLiquidity, RpcError, RpcExhausted
from .abi import decode_words, encode_address, encode_call, encode_uint256
from .constants import (
    FEE_TIERS,
    QUOTE_EXACT_INPUT_SINGLE_SELECTOR,
    QUOTER_V2,
    STABLE_SYMBOLS,
    TOKEN_VARIANTS,
)
from .models import Intent, Quote, TokenVariant, compute_min_out, to_base_units
from ...cache import CacheBackend, build_cache
from ...config import settings
from ...providers.rpc import RpcFailoverClient, get_rpc_client

logger = logging.getLogger(__name__)

# (notional USD upper bound, estimated impact %). Coarse size buckets, not an
# AMM reserve computation.
PRICE_IMPACT_BUCKETS: Tuple[Tuple[float, float], ...] = (
    (1_000, 0.01),
    (10_000, 0.05),
    (50_000, 0.3),
    (100_000, 1.0),
    (500_000, 3.0),
)
PRICE_IMPACT_CEILING = 6.0


def estimate_price_impact(notional_usd: Optional[float]) -> Optional[float]:
    if notional_usd is None:
        return None
    for upper, impact in PRICE_IMPACT_BUCKETS:
        if notional_usd < upper:
            return impact
    return PRICE_IMPACT_CEILING


def variants_for(symbol: str) -> List[TokenVariant]:
    return [TokenVariant.from_symbol(s) for s in TOKEN_VARIANTS.get(symbol.upper(), (symbol,))]


def encode_quote_call(token_in: str, token_out: str, amount_in: int, fee: int) -> str:
    return encode_call(
        QUOTE_EXACT_INPUT_SINGLE_SELECTOR,
        encode_address(token_in),
        encode_address(token_out),
        encode_uint256(amount_in),
        encode_uint256(fee),
        encode_uint256(0),  # sqrtPriceLimitX96
    )


@dataclass
class _Candidate:
    amount_out: int
    gas_estimate: int
    fee: int
    token_in: TokenVariant
    token_out: TokenVariant
    amount_in: int


class QuoteAggregator:
    """Finds the best executable single-hop route for an intent."""

    def __init__(
        self,
        rpc: Optional[RpcFailoverClient] = None,
        cache: Optional[CacheBackend] = None,
        fee_tiers: Sequence[int] = FEE_TIERS,
        local_retries: Optional[int] = None,
        cache_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.rpc = rpc or get_rpc_client()
        self.cache_ttl = cache_ttl or settings.quote_cache_ttl_seconds
        self.cache = cache or build_cache(self.cache_ttl, "swap:")
        self.fee_tiers = tuple(sorted(fee_tiers))
        self.local_retries = settings.quoter_local_retries if local_retries is None else local_retries
        self._clock = clock

    @staticmethod
    def _cache_key(intent: Intent) -> str:
        return f"quote:{intent.request_key}"

    async def invalidate(self, intent: Intent) -> None:
        await self.cache.expire(self._cache_key(intent))

    async def get_quote(self, intent: Intent) -> Quote:
        cached = await self.cache.get(self._cache_key(intent))
        if cached:
            logger.debug("Quote cache hit for %s", intent.request_key)
            return Quote.from_dict(cached)

        quote = await self._search(intent)
        await self.cache.set(self._cache_key(intent), quote.to_dict(), ttl=self.cache_ttl)
        return quote

    async def _quote_once(
        self,
        pool_in: TokenVariant,
        pool_out: TokenVariant,
        amount_in: int,
        fee: int,
    ) -> Tuple[Optional[Tuple[int, int]], bool]:
        """Returns ((amount_out, gas_estimate) or None, transport_failed)."""

        calldata = encode_quote_call(pool_in.address, pool_out.address, amount_in, fee)

        for attempt in range(self.local_retries + 1):
            try:
                result = await self.rpc.eth_call(QUOTER_V2, calldata)
                words = decode_words(result)
                if len(words) < 4:
                    raise ValueError("Short quoter response")
                return (words[0], words[3]), False
            except RpcExhausted as exc:
                logger.warning(
                    "Quoter transport failure %s->%s fee %d (attempt %d/%d): %s",
                    pool_in.symbol,
                    pool_out.symbol,
                    fee,
                    attempt + 1,
                    self.local_retries + 1,
                    exc,
                )
            except (RpcError, ValueError) as exc:
                # Revert or garbage: no pool at this tier, retrying will not help.
                logger.debug("Quoter failed for %s->%s fee %d: %s", pool_in.symbol, pool_out.symbol, fee, exc)
                return None, False

        return None, True

    async def _search(self, intent: Intent) -> Quote:
        best: Optional[_Candidate] = None
        attempted = 0
        transport_failures = 0

        for src in variants_for(intent.token_in_symbol):
            for dst in variants_for(intent.token_out_symbol):
                pool_in, pool_out = src.pool_token(), dst.pool_token()
                if pool_in.address.lower() == pool_out.address.lower():
                    continue

                amount_in = to_base_units(intent.amount_decimal, pool_in.decimals)
                if amount_in <= 0:
                    continue

                for fee in self.fee_tiers:
                    attempted += 1
                    outcome, transport_failed = await self._quote_once(pool_in, pool_out, amount_in, fee)
                    if transport_failed:
                        transport_failures += 1
                        continue
                    if outcome is None:
                        continue

                    amount_out, gas_estimate = outcome
                    if amount_out > 0 and (best is None or amount_out > best.amount_out):
                        best = _Candidate(amount_out, gas_estimate, fee, src, dst, amount_in)

        if best is None:
            if attempted and transport_failures == attempted:
                raise RpcExhausted("Every quoter call failed at the transport level")
            raise NoLiquidity(
                f"No liquidity pool found for {intent.token_in_symbol}/{intent.token_out_symbol}",
                safe_message="No liquidity pool found for this token pair",
            )

        quote = self._build_quote(intent, best)
        logger.info(
            "Best quote %s: out=%d fee=%d via %s/%s",
            intent.request_key,
            quote.amount_out,
            quote.fee_tier,
            quote.token_in.symbol,
            quote.token_out.symbol,
        )
        return quote

    def _build_quote(self, intent: Intent, best: _Candidate) -> Quote:
        pool_in, pool_out = best.token_in.pool_token(), best.token_out.pool_token()
        amount_out_decimal = Decimal(best.amount_out).scaleb(-pool_out.decimals)

        if intent.token_in_symbol in STABLE_SYMBOLS:
            notional: Optional[float] = float(intent.amount_decimal)
        elif intent.token_out_symbol in STABLE_SYMBOLS:
            notional = float(amount_out_decimal)
        else:
            notional = None

        return Quote(
            intent=intent,
            amount_in=best.amount_in,
            amount_out=best.amount_out,
            min_out=compute_min_out(best.amount_out, intent.slippage_bps),
            fee_tier=best.fee,
            gas_estimate=best.gas_estimate,
            price=float(amount_out_decimal / intent.amount_decimal),
            price_impact=estimate_price_impact(notional),
            token_in=best.token_in,
            token_out=best.token_out,
            pool_token_in=pool_in,
            pool_token_out=pool_out,
            quoted_at=self._clock(),
        )


_quote_aggregator: Optional[QuoteAggregator] = None


def get_quote_aggregator() -> QuoteAggregator:
    global _quote_aggregator
    if _quote_aggregator is None:
        _quote_aggregator = QuoteAggregator()
    return _quote_aggregator
