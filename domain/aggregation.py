"""
Weighted signal aggregation and confidence calibration.

Signals are bucketed by direction and scored as sum(strength * weight).
The winning bucket's score, adjusted for volume and disagreement, is
normalized against a fixed ceiling and scaled into a confidence band,
then shaped by the market regime and an alignment bonus.

Two bands exist on purpose:
- TECHNICAL_CONFIDENCE_BAND (70-99): direct prediction path
- LIVE_CONFIDENCE_BAND (80-99): progressive pipeline, matching the
  clamp applied to reasoning-model decisions
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, NamedTuple, Sequence

from .enums import Direction, MarketRegime
from .signals import WeightedSignal

logger = logging.getLogger(__name__)


class ConfidenceBand(NamedTuple):
    minimum: float
    maximum: float

    @property
    def width(self) -> float:
        return self.maximum - self.minimum

    def clamp(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))


TECHNICAL_CONFIDENCE_BAND = ConfidenceBand(70, 99)
LIVE_CONFIDENCE_BAND = ConfidenceBand(80, 99)

SCORE_CEILING = 180.0
ALIGNMENT_THRESHOLD = 85.0

REGIME_MULTIPLIERS = {
    MarketRegime.STRONG_TRENDING: 1.15,
    MarketRegime.TRENDING: 1.05,
    MarketRegime.RANGING: 0.9,
}

NO_SIGNAL_REASON = "Insufficient market data for prediction"


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positives (Python's round() is banker's)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class AggregationResult:
    """Direction and calibrated confidence from one signal set."""
    direction: Direction
    confidence: int
    signal_alignment: float
    quality_score: float
    reasons: list[str] = field(default_factory=list)

    # Breakdown for transparency payloads
    up_score: float = 0.0
    down_score: float = 0.0
    up_count: int = 0
    down_count: int = 0
    penalty: float = 0.0
    raw_score: float = 0.0
    regime_multiplier: float = 1.0
    alignment_bonus: float = 0.0
    volume_bonus: float = 0.0
    band: ConfidenceBand = LIVE_CONFIDENCE_BAND

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "confidence": self.confidence,
            "signalAlignment": round_half_up(self.signal_alignment),
            "qualityScore": round_half_up(self.quality_score),
            "reasons": list(self.reasons),
            "breakdown": {
                "upScore": self.up_score,
                "downScore": self.down_score,
                "upCount": self.up_count,
                "downCount": self.down_count,
                "penalty": self.penalty,
                "rawScore": self.raw_score,
                "regimeMultiplier": self.regime_multiplier,
                "alignmentBonus": self.alignment_bonus,
                "volumeBonus": self.volume_bonus,
                "band": list(self.band),
            },
        }


def _alignment_penalty(alignment: float, losing_score: float) -> float:
    penalty = 0.0
    if alignment < ALIGNMENT_THRESHOLD:
        penalty = (ALIGNMENT_THRESHOLD - alignment) * 1.2
    if losing_score > 50:
        penalty += losing_score * 0.5
    return penalty


def _alignment_bonus(alignment: float) -> float:
    if alignment >= 95:
        return 3.0
    if alignment >= 88:
        return 2.0
    return 0.0


def combine_weighted_signals(
    signals: Sequence[WeightedSignal],
    volume_bonus: float,
    regime: MarketRegime,
    band: ConfidenceBand = LIVE_CONFIDENCE_BAND,
) -> AggregationResult:
    """
    Combine weighted signals into a direction and calibrated confidence.

    Args:
        signals: Analyzer outputs; NEUTRAL entries are ignored
        volume_bonus: Signed bonus from `analyze_volume`
        regime: Market regime of the entry timeframe
        band: Confidence band of the calling path

    Returns:
        AggregationResult; NEUTRAL with confidence 0 when no signal has a direction
    """
    up_score = down_score = 0.0
    up_count = down_count = 0
    up_reasons: list[str] = []
    down_reasons: list[str] = []

    for signal in signals:
        if signal.direction is Direction.UP:
            up_score += signal.weighted_strength
            up_count += 1
            up_reasons.append(signal.reason)
        elif signal.direction is Direction.DOWN:
            down_score += signal.weighted_strength
            down_count += 1
            down_reasons.append(signal.reason)

    total = up_count + down_count
    if total == 0 or (up_score == 0 and down_score == 0):
        logger.debug("No directional signals; returning NEUTRAL")
        return AggregationResult(
            direction=Direction.NEUTRAL,
            confidence=0,
            signal_alignment=0.0,
            quality_score=0.0,
            reasons=[NO_SIGNAL_REASON],
            volume_bonus=volume_bonus,
            band=band,
        )

    if up_score == down_score:
        direction = Direction.UP if up_count >= down_count else Direction.DOWN
    else:
        direction = Direction.UP if up_score > down_score else Direction.DOWN

    if direction is Direction.UP:
        winning, losing, aligned, reasons = up_score, down_score, up_count, up_reasons
    else:
        winning, losing, aligned, reasons = down_score, up_score, down_count, down_reasons

    alignment = aligned / total * 100
    penalty = _alignment_penalty(alignment, losing)
    raw = max(0.0, winning + volume_bonus - penalty)

    multiplier = REGIME_MULTIPLIERS[regime]
    normalized = min(raw / SCORE_CEILING, 1.0)
    scaled = (band.minimum + normalized * band.width) * multiplier
    bonus = _alignment_bonus(alignment)
    scaled += bonus

    confidence = round_half_up(band.clamp(scaled))
    quality = alignment * 0.4 + (confidence - band.minimum) / band.width * 60

    logger.debug(
        f"Aggregated {direction.value}: up={up_score:.1f} ({up_count}) "
        f"down={down_score:.1f} ({down_count}) alignment={alignment:.0f}% "
        f"penalty={penalty:.1f} raw={raw:.1f} regime={regime.value} x{multiplier:.2f} "
        f"confidence={confidence}"
    )

    return AggregationResult(
        direction=direction,
        confidence=confidence,
        signal_alignment=alignment,
        quality_score=quality,
        reasons=reasons,
        up_score=up_score,
        down_score=down_score,
        up_count=up_count,
        down_count=down_count,
        penalty=penalty,
        raw_score=raw,
        regime_multiplier=multiplier,
        alignment_bonus=bonus,
        volume_bonus=volume_bonus,
        band=band,
    )


def determine_duration(
    confidence: float,
    volume_indicator: float,
    signal_alignment: float,
    regime: MarketRegime,
) -> str:
    """Map confidence, volume and alignment to a holding-time label."""
    volume = abs(volume_indicator)
    if regime is MarketRegime.STRONG_TRENDING and confidence >= 92 and signal_alignment >= 90:
        return "10-15 seconds"
    if confidence >= 95 and volume > 20 and signal_alignment >= 85:
        return "15-20 seconds"
    if confidence >= 92 and volume > 15 and signal_alignment >= 80:
        return "20-30 seconds"
    if confidence >= 90 and signal_alignment >= 75:
        return "30-45 seconds"
    if confidence >= 85:
        return "45-60 seconds"
    if confidence >= 80:
        return "60-90 seconds"
    return "90-120 seconds"
