"""
Risk Classification

Weighted multi-factor scoring of a swap before the user confirms it.
The result is advisory; the lifecycle decides whether a critical rating
blocks execution.
"""

from .models import (
    RiskLevel,
    RiskInput,
    RiskFactor,
    RiskAssessment,
)

from .classifier import (
    RISK_PATTERNS,
    assess_swap_risk,
    is_swap_safe,
    level_for_score,
    risk_summary,
)

from .market import (
    TokenPrice,
    MarketContext,
    MarketDataSource,
    build_risk_input,
    gas_cost_usd,
)

__all__ = [
    "RiskLevel",
    "RiskInput",
    "RiskFactor",
    "RiskAssessment",
    "RISK_PATTERNS",
    "assess_swap_risk",
    "is_swap_safe",
    "level_for_score",
    "risk_summary",
    "TokenPrice",
    "MarketContext",
    "MarketDataSource",
    "build_risk_input",
    "gas_cost_usd",
]
