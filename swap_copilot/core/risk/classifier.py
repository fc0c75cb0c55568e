"""
Swap Risk Classifier

Six independent, optional factors each map an input to a weighted
(severity, weight) band. The score is the capped sum of weights; the level is
the score band, raised to the most severe factor that fired so that one
high-severity factor on its own is never reported as low or medium.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from .models import RiskAssessment, RiskFactor, RiskInput, RiskLevel, max_level

logger = logging.getLogger(__name__)

RISK_PATTERNS: Dict[str, str] = {
    "large_trade": "Consider splitting into smaller trades to reduce price impact",
    "high_volatility": "Increase slippage tolerance or wait for market to stabilize",
    "low_liquidity": "Expect significant price impact, verify route carefully",
    "high_slippage": "High slippage increases sandwich attack risk",
    "extreme_price_impact": "Trade will significantly move the market - strongly recommend reducing amount",
    "network_congestion": "High gas fees detected - consider waiting or increasing gas limit",
}

CRITICAL_BANNER = "Critical risk detected - strongly recommend not proceeding with this swap"


def _usd(amount: float) -> str:
    return f"${amount:,.0f}"


def assess_trade_size(amount_usd: float) -> Optional[RiskFactor]:
    if amount_usd > 50_000:
        return RiskFactor(
            "Very large trade", RiskLevel.CRITICAL, 40,
            f"Trade size of {_usd(amount_usd)} is extremely large", "large_trade",
        )
    if amount_usd > 10_000:
        return RiskFactor(
            "Large trade", RiskLevel.HIGH, 25,
            f"Trade size of {_usd(amount_usd)} may impact market significantly", "large_trade",
        )
    if amount_usd > 1_000:
        return RiskFactor("Moderate trade size", RiskLevel.MEDIUM, 10, f"Trade size of {_usd(amount_usd)} is moderate")
    return None


def assess_price_impact(price_impact: float) -> Optional[RiskFactor]:
    if price_impact > 10:
        return RiskFactor(
            "Extreme price impact", RiskLevel.CRITICAL, 50,
            f"{price_impact:.2f}% price impact will significantly move the market", "extreme_price_impact",
        )
    if price_impact > 5:
        return RiskFactor(
            "High price impact", RiskLevel.HIGH, 30,
            f"{price_impact:.2f}% price impact detected", "extreme_price_impact",
        )
    if price_impact > 2:
        return RiskFactor("Moderate price impact", RiskLevel.MEDIUM, 15, f"{price_impact:.2f}% price impact")
    if price_impact > 1:
        return RiskFactor("Minor price impact", RiskLevel.LOW, 5, f"{price_impact:.2f}% price impact")
    return None


def assess_slippage(slippage_pct: float) -> Optional[RiskFactor]:
    if slippage_pct > 10:
        return RiskFactor(
            "Very high slippage tolerance", RiskLevel.HIGH, 25,
            f"{slippage_pct:g}% slippage tolerance increases MEV/sandwich attack risk", "high_slippage",
        )
    if slippage_pct > 5:
        return RiskFactor(
            "High slippage tolerance", RiskLevel.MEDIUM, 15,
            f"{slippage_pct:g}% slippage tolerance is higher than recommended", "high_slippage",
        )
    if slippage_pct > 2:
        return RiskFactor("Elevated slippage", RiskLevel.LOW, 5, f"{slippage_pct:g}% slippage tolerance")
    return None


def assess_volatility(volatility: float) -> Optional[RiskFactor]:
    magnitude = abs(volatility)
    description = f"Token price moved {volatility:.2f}% in 24h"

    if magnitude > 15:
        return RiskFactor("Extreme market volatility", RiskLevel.HIGH, 30, description, "high_volatility")
    if magnitude > 10:
        return RiskFactor("High market volatility", RiskLevel.MEDIUM, 20, description, "high_volatility")
    if magnitude > 5:
        return RiskFactor("Moderate volatility", RiskLevel.LOW, 10, description)
    return None


def assess_liquidity(pool_liquidity_usd: float, amount_usd: float) -> Optional[RiskFactor]:
    if pool_liquidity_usd < 50_000:
        return RiskFactor(
            "Very low pool liquidity", RiskLevel.CRITICAL, 40,
            f"Pool has only {_usd(pool_liquidity_usd)} liquidity", "low_liquidity",
        )

    trade_ratio = amount_usd / pool_liquidity_usd * 100
    if trade_ratio > 10:
        return RiskFactor(
            "Trade size vs liquidity mismatch", RiskLevel.HIGH, 30,
            f"Trade is {trade_ratio:.1f}% of pool liquidity", "low_liquidity",
        )
    if trade_ratio > 5:
        return RiskFactor(
            "Moderate liquidity concern", RiskLevel.MEDIUM, 15,
            f"Trade is {trade_ratio:.1f}% of pool liquidity",
        )
    return None


def assess_gas_cost(gas_usd: float, amount_usd: float) -> Optional[RiskFactor]:
    gas_ratio = gas_usd / amount_usd * 100
    description = f"Gas (${gas_usd:.2f}) is {gas_ratio:.1f}% of trade value"

    if gas_ratio > 10:
        return RiskFactor("Very high gas cost", RiskLevel.HIGH, 20, description, "network_congestion")
    if gas_ratio > 5:
        return RiskFactor("High gas cost", RiskLevel.MEDIUM, 10, description)
    return None


def level_for_score(score: int) -> RiskLevel:
    if score >= 70:
        return RiskLevel.CRITICAL
    if score >= 40:
        return RiskLevel.HIGH
    if score >= 20:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _collect_factors(params: RiskInput) -> List[RiskFactor]:
    checks: List[Callable[[], Optional[RiskFactor]]] = []

    if params.amount_usd is not None:
        checks.append(lambda: assess_trade_size(params.amount_usd))
    if params.price_impact is not None:
        checks.append(lambda: assess_price_impact(params.price_impact))
    checks.append(lambda: assess_slippage(params.slippage_pct))
    if params.market_volatility is not None:
        checks.append(lambda: assess_volatility(params.market_volatility))
    if params.pool_liquidity_usd is not None:
        checks.append(lambda: assess_liquidity(params.pool_liquidity_usd, params.amount_usd or 0.0))
    if params.gas_estimate_usd is not None and params.amount_usd:
        checks.append(lambda: assess_gas_cost(params.gas_estimate_usd, params.amount_usd))

    return [factor for factor in (check() for check in checks) if factor is not None]


def _recommendations(factors: List[RiskFactor], params: RiskInput) -> List[str]:
    recommendations: List[str] = []

    def add(text: str) -> None:
        if text not in recommendations:
            recommendations.append(text)

    if any(f.severity == RiskLevel.CRITICAL for f in factors):
        add(CRITICAL_BANNER)

    for factor in factors:
        if factor.pattern:
            add(RISK_PATTERNS[factor.pattern])

    if params.amount_usd is not None and params.amount_usd > 10_000:
        add("Consider splitting into multiple smaller trades to reduce market impact")
    if params.price_impact is not None and params.price_impact > 5:
        add("Reduce trade amount to lower price impact below 5%")
    if params.slippage_pct > 5:
        add("Lower slippage tolerance to reduce MEV risk (0.5-1% recommended)")
    if params.market_volatility is not None and abs(params.market_volatility) > 10:
        add("Consider waiting for market to stabilize before executing")

    if any(f.severity in (RiskLevel.HIGH, RiskLevel.CRITICAL) for f in factors):
        add("Double-check all parameters before confirming transaction")

    return recommendations


def assess_swap_risk(params: RiskInput) -> RiskAssessment:
    """Score a swap. Advisory only: callers decide whether to block."""

    factors = _collect_factors(params)
    score = min(100, sum(f.weight for f in factors))

    # Factors lift the level to at most high. Only the score reaches critical.
    level = level_for_score(score)
    if factors:
        worst = max_level(*(f.severity for f in factors))
        level = max_level(level, min(worst, RiskLevel.HIGH, key=lambda rated: rated.rank))

    assessment = RiskAssessment(
        score=score,
        level=level,
        factors=factors,
        recommendations=_recommendations(factors, params),
    )
    logger.debug("Risk assessed: score=%d level=%s factors=%d", score, level.value, len(factors))
    return assessment


def is_swap_safe(params: RiskInput) -> bool:
    return assess_swap_risk(params).should_proceed


_LEVEL_MARKERS = {
    RiskLevel.LOW: "[ok]",
    RiskLevel.MEDIUM: "[!]",
    RiskLevel.HIGH: "[!!]",
    RiskLevel.CRITICAL: "[!!!]",
}


def risk_summary(assessment: RiskAssessment) -> str:
    """Human-readable multi-line summary."""

    lines = [
        f"{_LEVEL_MARKERS[assessment.level]} Risk Level: {assessment.level.value.upper()} "
        f"(Score: {assessment.score}/100)"
    ]

    if assessment.factors:
        lines.append("\nRisk Factors:")
        lines.extend(f"- {f.name}: {f.description}" for f in assessment.factors)

    if assessment.recommendations:
        lines.append("\nRecommendations:")
        lines.extend(f"- {rec}" for rec in assessment.recommendations)

    return "\n".join(lines)
