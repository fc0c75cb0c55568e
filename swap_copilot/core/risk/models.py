"""Risk assessment data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.CRITICAL: 3}


def max_level(*levels: RiskLevel) -> RiskLevel:
    return max(levels, key=lambda level: level.rank)


@dataclass(frozen=True)
class RiskInput:
    """Inputs to the classifier. Any factor whose input is None is skipped."""

    slippage_pct: float
    amount_usd: Optional[float] = None
    price_impact: Optional[float] = None
    market_volatility: Optional[float] = None  # 24h change %, signed
    pool_liquidity_usd: Optional[float] = None
    gas_estimate_usd: Optional[float] = None


@dataclass(frozen=True)
class RiskFactor:
    name: str
    severity: RiskLevel
    weight: int
    description: str = ""
    # Key into RISK_PATTERNS for the advice this factor triggers, if any.
    pattern: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "severity": self.severity.value,
            "weight": self.weight,
            "description": self.description,
        }


@dataclass
class RiskAssessment:
    score: int
    level: RiskLevel
    factors: List[RiskFactor] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)

    @property
    def should_proceed(self) -> bool:
        return self.level != RiskLevel.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "factors": [f.to_dict() for f in self.factors],
            "recommendations": list(self.recommendations),
            "should_proceed": self.should_proceed,
        }
