"""
Final-verdict validation rules and trade-target construction.

Applied after the reasoning model (or the aggregator) proposes a
direction. A rejected proposal becomes a NEUTRAL verdict that keeps the
proposed confidence and explains why it was rejected.
"""

import math
from dataclasses import dataclass
from typing import Sequence

from .decision import PriceRange, TradeTargets
from .enums import Direction, TrendBias
from .primitives import Candle


# Holding-time labels per entry timeframe
TIMEFRAME_DURATIONS = {
    "M1": "1-2 minutes",
    "M3": "3-5 minutes",
    "M5": "5-8 minutes",
    "M15": "15-20 minutes",
    "M30": "30-45 minutes",
    "M45": "45-60 minutes",
    "H1": "1-2 hours",
    "H2": "2-4 hours",
    "H3": "3-5 hours",
    "H4": "4-6 hours",
    "D1": "1-2 days",
    "W1": "1-2 weeks",
}

SCALPING_TIMEFRAMES = ("M1", "M3", "M5")
SWING_TIMEFRAMES = ("M15", "M30", "H1")
POSITION_TIMEFRAMES = ("H2", "H4", "D1")


def duration_for_timeframe(timeframe: str) -> str:
    return TIMEFRAME_DURATIONS.get(timeframe, TIMEFRAME_DURATIONS["M1"])


def anchor_timeframe(entry: str) -> str:
    """Higher timeframe used to confirm the entry timeframe's trend."""
    if entry in SCALPING_TIMEFRAMES:
        return "H1"
    if entry in SWING_TIMEFRAMES:
        return "H4"
    if entry in POSITION_TIMEFRAMES:
        return "W1"
    return "H4"


# ============================================================================
# Checks
# ============================================================================

@dataclass(frozen=True)
class CheckResult:
    passed: bool
    reason: str
    value: float | None = None


def check_volume_confirmation(current_volume: float, volume_ma: float) -> CheckResult:
    ratio = current_volume / volume_ma if volume_ma > 0 else 1.0
    if ratio >= 1.0:
        return CheckResult(True, f"Volume confirmed: {ratio:.2f}x MA (>=1.0x threshold)", ratio)
    return CheckResult(False, f"Volume low: {ratio:.2f}x MA (<1.0x threshold)", ratio)


def check_volume_divergence(candles: Sequence[Candle], direction: Direction) -> CheckResult:
    """Detect a move on declining volume over the last two candles.

    `passed` is False when divergence is present.
    """
    if len(candles) < 5:
        return CheckResult(True, "Not enough data for divergence check")

    prev, curr = candles[-2], candles[-1]
    falling_volume = curr.volume < prev.volume

    if direction is Direction.UP and curr.close > prev.close and falling_volume:
        return CheckResult(False, "Weak Breakout: Price rising on declining volume")
    if direction is Direction.DOWN and curr.close < prev.close and falling_volume:
        return CheckResult(False, "Weak Breakdown: Price falling on declining volume")
    return CheckResult(True, "No volume divergence detected")


def check_rsi_neutral_zone(rsi: float) -> CheckResult:
    """`passed` is False inside the 49-51 neutral band (inclusive)."""
    if 49 <= rsi <= 51:
        return CheckResult(False, f"RSI in tight neutral zone ({rsi:.1f})", rsi)
    return CheckResult(True, f"RSI {rsi:.1f} - directional momentum", rsi)


_BIAS_FOR_DIRECTION = {
    Direction.UP: TrendBias.BULLISH,
    Direction.DOWN: TrendBias.BEARISH,
    Direction.NEUTRAL: TrendBias.NEUTRAL,
}


def check_trend_alignment(anchor_bias: TrendBias, direction: Direction) -> CheckResult:
    entry_bias = _BIAS_FOR_DIRECTION[direction]
    if anchor_bias is TrendBias.NEUTRAL:
        return CheckResult(True, "Anchor trend neutral - proceeding with caution")
    if entry_bias is TrendBias.NEUTRAL:
        return CheckResult(True, "Entry direction neutral - proceeding")
    if entry_bias is anchor_bias:
        return CheckResult(
            True,
            f"Trend aligned: Entry ({entry_bias.value}) matches Anchor ({anchor_bias.value})",
        )
    return CheckResult(
        False,
        f"Trend Conflict: Entry ({entry_bias.value}) conflicts with Anchor "
        f"({anchor_bias.value}) - Entry rejected",
    )


@dataclass(frozen=True)
class ValidationOutcome:
    confidence: int
    proceed: bool
    rejection_reason: str | None = None


def validate_confidence(
    confidence: int,
    volume_ratio: float,
    rsi_neutral: bool,
    volume_divergence: bool,
) -> ValidationOutcome:
    """
    Decide whether a proposed verdict may proceed.

    85 and above always proceeds. Below 80 is rejected. Between, the
    proposal is rejected on low volume (< 0.8x), volume divergence, or
    an RSI neutral zone. Trend conflicts never reject at or above 80.
    """
    if confidence >= 85:
        return ValidationOutcome(confidence, True)
    if confidence < 80:
        return ValidationOutcome(
            confidence, False,
            f"Confidence below minimum threshold ({confidence}% < 80%)",
        )
    if volume_ratio < 0.8:
        return ValidationOutcome(
            confidence, False,
            f"Low volume ({volume_ratio:.2f}x) requires higher baseline confidence",
        )
    if volume_divergence:
        return ValidationOutcome(
            confidence, False, "Volume divergence detected - weak breakout/breakdown",
        )
    if rsi_neutral:
        return ValidationOutcome(confidence, False, "RSI in tight neutral zone - low momentum")
    return ValidationOutcome(min(99, confidence), True)


# ============================================================================
# Trade targets
# ============================================================================

def fallback_trade_targets(direction: Direction, price: float, atr: float) -> TradeTargets:
    """
    ATR-sized trade plan.

    ATR is floored at 0.2% of price. Entry is a 0.25 ATR band skewed
    against the trade, targets sit 1.5-2.4 ATR away and the stop 1.05 ATR
    beyond the far edge of the entry band.
    """
    if not direction.is_actionable:
        raise ValueError("trade targets need an UP or DOWN direction")

    safe_atr = max(abs(atr), abs(price) * 0.002)
    band = safe_atr * 0.25

    if direction is Direction.UP:
        entry_low = price - band
        entry_high = price + band * 0.5
        return TradeTargets(
            entry=PriceRange(low=min(entry_low, entry_high), high=max(entry_low, entry_high)),
            target=PriceRange(low=price + safe_atr * 1.5, high=price + safe_atr * 2.4),
            stop=entry_low - safe_atr * 1.05,
        )

    entry_low = price - band * 0.5
    entry_high = price + band
    return TradeTargets(
        entry=PriceRange(low=min(entry_low, entry_high), high=max(entry_low, entry_high)),
        target=PriceRange(low=price - safe_atr * 2.4, high=price - safe_atr * 1.5),
        stop=entry_high + safe_atr * 1.05,
    )


def normalize_trade_targets(
    targets: TradeTargets | None,
    direction: Direction,
    price: float,
    atr: float,
) -> TradeTargets | None:
    """
    Sanitize model-supplied targets.

    Bands are reordered low/high. A stop on the wrong side of the entry
    band is replaced by the fallback stop; a target that does not clear
    the entry band discards the whole plan for the fallback.
    Returns None when no usable targets were given.
    """
    if targets is None:
        return None
    values = (targets.entry.low, targets.entry.high, targets.target.low,
              targets.target.high, targets.stop)
    if not all(math.isfinite(v) for v in values):
        return None

    entry_low, entry_high = sorted((targets.entry.low, targets.entry.high))
    target_low, target_high = sorted((targets.target.low, targets.target.high))
    fallback = fallback_trade_targets(direction, price, atr)
    stop = targets.stop

    if direction is Direction.UP:
        if not stop < entry_low:
            stop = fallback.stop
        if not target_high > entry_high:
            return fallback
    else:
        if not stop > entry_high:
            stop = fallback.stop
        if not target_low < entry_low:
            return fallback

    return TradeTargets(
        entry=PriceRange(low=entry_low, high=entry_high),
        target=PriceRange(low=target_low, high=target_high),
        stop=stop,
    )
