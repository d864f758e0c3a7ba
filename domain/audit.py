"""
Safety audit run before signal aggregation.

Three deterministic checks plus a constant multi-timeframe placeholder.
Boundaries are strict: EMA12 > EMA26, volume ratio > 1.0, ADX > 15.
"""

from dataclasses import dataclass, field
from typing import Any

from .enums import AuditStatus
from .technical import TechnicalIndicatorSet


@dataclass(frozen=True)
class AuditCheck:
    name: str
    status: AuditStatus
    value: str
    message: str
    threshold: str
    category: str

    @property
    def passed(self) -> bool:
        return self.status is AuditStatus.PASS

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "value": self.value,
            "message": self.message,
            "threshold": self.threshold,
            "category": self.category,
        }


@dataclass(frozen=True)
class SafetyAudit:
    checks: list[AuditCheck] = field(default_factory=list)
    score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"checks": [c.to_dict() for c in self.checks], "score": self.score}


def volume_ratio(current_volume: float, volume_ma: float) -> float:
    """Current volume relative to its 20-period average; 1.0 without an average."""
    return current_volume / volume_ma if volume_ma > 0 else 1.0


def run_safety_audit(ind: TechnicalIndicatorSet) -> SafetyAudit:
    ema12 = ind.moving_averages.ema12
    ema26 = ind.moving_averages.ema26
    bullish = ema12 > ema26
    trend = AuditCheck(
        name="Trend Structure (EMA)",
        status=AuditStatus.PASS if bullish else AuditStatus.FAIL,
        value="BULLISH" if bullish else "BEARISH",
        message="EMA 12 > EMA 26" if bullish else "EMA 12 < EMA 26",
        threshold="EMA 12 > 26",
        category="Trend",
    )

    ratio = volume_ratio(ind.current_volume, ind.volume_ma)
    fueled = ratio > 1.0
    fuel = AuditCheck(
        name="Volume Fuel (20d)",
        status=AuditStatus.PASS if fueled else AuditStatus.WARN,
        value=f"{ratio:.2f}x",
        message="High Participation" if fueled else "Low Volume",
        threshold="> 1.0x Avg",
        category="Momentum",
    )

    active = ind.adx.value > 15
    guard = AuditCheck(
        name="ADX Volatility Guard",
        status=AuditStatus.PASS if active else AuditStatus.FAIL,
        value=f"{ind.adx.value:.1f}",
        message="Active Trend" if active else "Choppy/Dead",
        threshold="> 15.0",
        category="Structure",
    )

    mtf = AuditCheck(
        name="MTF Alignment",
        status=AuditStatus.PASS,
        value="ALIGNED",
        message="Anchor & Entry Sync",
        threshold="Aligned",
        category="Market Structure",
    )

    score = (
        (25 if trend.passed else 0)
        + (25 if fuel.passed else 15)
        + (25 if guard.passed else 0)
        + 25
    )
    return SafetyAudit(checks=[trend, fuel, guard, mtf], score=score)
