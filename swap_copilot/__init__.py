"""Swap quote aggregation and execution orchestration for Uniswap V3 on Base."""

__version__ = "0.1.0"
