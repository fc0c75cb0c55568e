#!/usr/bin/env python3
"""Simple CLI for exercising the swap engine against a live RPC"""

import argparse
import asyncio
import sys
from decimal import Decimal

from swap_copilot.config import settings
from swap_copilot.core.errors import SwapError, sanitize_error_message
from swap_copilot.core.risk import assess_swap_risk, build_risk_input, risk_summary
from swap_copilot.core.swap.models import Intent, Quote
from swap_copilot.core.swap.quotes import get_quote_aggregator
from swap_copilot.providers.coingecko import CoingeckoProvider
from swap_copilot.providers.rpc import get_rpc_client


def print_quote(quote: Quote) -> None:
    """Pretty print a quote"""
    out_decimals = quote.pool_token_out.decimals
    expected = Decimal(quote.amount_out).scaleb(-out_decimals)
    minimum = Decimal(quote.min_out).scaleb(-out_decimals)

    print(f"\n💱 {quote.intent.amount} {quote.token_in.symbol} → {quote.token_out.symbol}")
    print("=" * 50)
    print(f"Expected:   {expected:,.6f} {quote.token_out.symbol}")
    print(f"Minimum:    {minimum:,.6f} {quote.token_out.symbol} ({quote.intent.slippage_bps} bps slippage)")
    print(f"Price:      {quote.price:,.6f}")
    print(f"Fee tier:   {quote.fee_tier / 10_000:.2f}%")
    print(f"Gas est.:   {quote.gas_estimate:,}")
    if quote.price_impact is not None:
        print(f"Impact:     ~{quote.price_impact}%")
    if quote.token_in.address != quote.pool_token_in.address:
        print(f"Routed via: {quote.pool_token_in.symbol}")


async def cli_quote(token_in: str, token_out: str, amount: str, slippage_bps: int) -> Quote:
    """CLI command to fetch the best quote"""
    print(f"🔍 Quoting {amount} {token_in.upper()} → {token_out.upper()}...")
    intent = Intent(token_in, token_out, amount, slippage_bps)
    quote = await get_quote_aggregator().get_quote(intent)
    print_quote(quote)
    return quote


async def cli_risk(token_in: str, token_out: str, amount: str, slippage_bps: int) -> None:
    """CLI command to quote and score a swap"""
    quote = await cli_quote(token_in, token_out, amount, slippage_bps)

    market = await CoingeckoProvider().get_market_context([quote.intent.token_in_symbol, quote.intent.token_out_symbol])
    assessment = assess_swap_risk(build_risk_input(quote, market))

    print("\n🛡️  Risk")
    print("-" * 50)
    print(risk_summary(assessment))
    if not assessment.should_proceed:
        print("\n⛔ Execution would require explicit confirmation")


async def cli_health() -> None:
    """CLI command to check RPC providers"""
    print("🩺 Probing RPC providers...")
    health = await get_rpc_client().health_check()
    print(f"\nOverall: {health['status']}")
    for provider in health.get("providers", []):
        marker = "✅" if provider["status"] == "healthy" else "❌"
        print(f" {marker} {provider['provider']:<12} {provider['latency']:>5} ms")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Swap Copilot CLI")
    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in (("quote", "Fetch the best quote"), ("risk", "Quote and score a swap")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("token_in", help="Input token symbol (e.g. ETH)")
        sub.add_argument("token_out", help="Output token symbol (e.g. USDC)")
        sub.add_argument("amount", help="Human-readable input amount")
        sub.add_argument(
            "--slippage-bps",
            type=int,
            default=settings.default_slippage_bps,
            help=f"Slippage tolerance in basis points (default: {settings.default_slippage_bps})",
        )

    subparsers.add_parser("health", help="Check RPC provider health")

    return parser


async def main() -> int:
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "quote":
            await cli_quote(args.token_in, args.token_out, args.amount, args.slippage_bps)
        elif args.command == "risk":
            await cli_risk(args.token_in, args.token_out, args.amount, args.slippage_bps)
        elif args.command == "health":
            await cli_health()
    except SwapError as e:
        print(f"❌ {sanitize_error_message(e)}")
        return 1

    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
