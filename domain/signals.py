"""
Signal analyzers.

One pure function per indicator family, each returning exactly one
WeightedSignal. Tier boundaries are strict comparisons; the aggregator
depends on them being reproduced exactly.
"""

from dataclasses import dataclass
from typing import Any

from .enums import Direction
from .technical import TechnicalIndicatorSet


@dataclass(frozen=True)
class WeightedSignal:
    """A single indicator's directional opinion."""
    direction: Direction
    strength: float  # 0-100
    weight: float
    category: str
    reason: str

    def __post_init__(self) -> None:
        if not 0 <= self.strength <= 100:
            raise ValueError(f"strength must be in [0, 100], got {self.strength}")
        if self.weight <= 0:
            raise ValueError(f"weight must be > 0, got {self.weight}")

    @property
    def weighted_strength(self) -> float:
        return self.strength * self.weight

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction.value,
            "strength": self.strength,
            "weight": self.weight,
            "category": self.category,
            "reason": self.reason,
        }


MOMENTUM = "Momentum"
TREND = "Trend"
VOLATILITY = "Volatility"
PRICE_ACTION = "Price Action"


def _up(strength: float, weight: float, category: str, reason: str) -> WeightedSignal:
    return WeightedSignal(Direction.UP, strength, weight, category, reason)


def _down(strength: float, weight: float, category: str, reason: str) -> WeightedSignal:
    return WeightedSignal(Direction.DOWN, strength, weight, category, reason)


def _neutral(strength: float, weight: float, category: str, reason: str) -> WeightedSignal:
    return WeightedSignal(Direction.NEUTRAL, strength, weight, category, reason)


def analyze_rsi(ind: TechnicalIndicatorSet) -> WeightedSignal:
    value = ind.rsi
    if value < 20:
        return _up(95, 1.3, MOMENTUM, f"RSI extremely oversold at {value:.1f}")
    if value < 30:
        return _up(85, 1.2, MOMENTUM, f"RSI oversold at {value:.1f}")
    if value > 80:
        return _down(95, 1.3, MOMENTUM, f"RSI extremely overbought at {value:.1f}")
    if value > 70:
        return _down(85, 1.2, MOMENTUM, f"RSI overbought at {value:.1f}")
    if value < 40:
        return _up(55, 1.0, MOMENTUM, "RSI trending low")
    if value > 60:
        return _down(55, 1.0, MOMENTUM, "RSI trending high")
    return _neutral(0, 0.5, MOMENTUM, "RSI neutral")


def analyze_stochastic(ind: TechnicalIndicatorSet) -> WeightedSignal:
    k, d = ind.stochastic
    if k < 20 and d < 20:
        return _up(90, 1.2, MOMENTUM, f"Stochastic oversold (K:{k:.0f} D:{d:.0f})")
    if k > 80 and d > 80:
        return _down(90, 1.2, MOMENTUM, f"Stochastic overbought (K:{k:.0f} D:{d:.0f})")
    if k < d and k < 50:
        return _up(65, 1.0, MOMENTUM, "Stochastic bullish crossover signal")
    if k > d and k > 50:
        return _down(65, 1.0, MOMENTUM, "Stochastic bearish crossover signal")
    return _neutral(0, 0.8, MOMENTUM, "Stochastic neutral")


def analyze_macd(ind: TechnicalIndicatorSet) -> WeightedSignal:
    value, signal, histogram = ind.macd
    diff = value - signal
    # Histogram magnitude scales strength, capped at 100
    strong = min(50 + abs(histogram) * 100, 100)

    if diff > 0 and histogram > 0:
        return _up(strong, 1.4, TREND, "MACD strong bullish momentum")
    if diff < 0 and histogram < 0:
        return _down(strong, 1.4, TREND, "MACD strong bearish momentum")
    if diff > 0:
        return _up(60, 1.1, TREND, "MACD bullish crossover")
    if diff < 0:
        return _down(60, 1.1, TREND, "MACD bearish crossover")
    return _neutral(0, 0.9, TREND, "MACD neutral")


# (description, strength contribution) for each moving-average comparison
_MA_CHECKS = (
    ("price vs SMA20", 15),
    ("price vs SMA50", 20),
    ("price vs SMA100", 15),
    ("price vs SMA200", 20),
    ("EMA12 vs EMA26", 15),
    ("SMA20 vs SMA50", 15),
)


def analyze_moving_averages(ind: TechnicalIndicatorSet) -> WeightedSignal:
    """Count agreement across six moving-average comparisons.

    Five or more agreeing escalates to strength 95 / weight 1.5; a simple
    majority scales strength by the agreeing share of the total.
    """
    ma = ind.moving_averages
    price = ind.current_price
    outcomes = (
        price > ma.sma20,
        price > ma.sma50,
        price > ma.sma100,
        price > ma.sma200,
        ma.ema12 > ma.ema26,
        ma.sma20 > ma.sma50,
    )
    total = len(_MA_CHECKS)
    total_strength = sum(points for _, points in _MA_CHECKS)
    bullish = sum(outcomes)
    bearish = total - bullish

    if bullish >= 5:
        return _up(95, 1.5, TREND, f"{bullish}/{total} MA indicators strongly bullish")
    if bullish > bearish:
        return _up(bullish / total * total_strength, 1.3, TREND,
                   f"{bullish}/{total} MA indicators bullish")
    if bearish >= 5:
        return _down(95, 1.5, TREND, f"{bearish}/{total} MA indicators strongly bearish")
    if bearish > bullish:
        return _down(bearish / total * total_strength, 1.3, TREND,
                     f"{bearish}/{total} MA indicators bearish")
    return _neutral(0, 1.0, TREND, "MA indicators mixed")


def analyze_bollinger(ind: TechnicalIndicatorSet) -> WeightedSignal:
    """Position of price inside the bands; a squeeze (bandwidth < 3) boosts edge weights."""
    upper, _, lower, bandwidth = ind.bollinger
    width = upper - lower
    if width <= 0:
        return _neutral(0, 0.7, VOLATILITY, "Price at BB middle")

    position = (ind.current_price - lower) / width
    squeeze = 1.3 if bandwidth < 3 else 1.0

    if position < 0.1:
        return _up(95, 1.2 * squeeze, VOLATILITY, "Price at extreme lower Bollinger Band")
    if position < 0.2:
        return _up(85, 1.1 * squeeze, VOLATILITY, "Price near lower Bollinger Band")
    if position > 0.9:
        return _down(95, 1.2 * squeeze, VOLATILITY, "Price at extreme upper Bollinger Band")
    if position > 0.8:
        return _down(85, 1.1 * squeeze, VOLATILITY, "Price near upper Bollinger Band")
    if position < 0.4:
        return _up(55, 0.9, VOLATILITY, "Price below BB middle")
    if position > 0.6:
        return _down(55, 0.9, VOLATILITY, "Price above BB middle")
    return _neutral(0, 0.7, VOLATILITY, "Price at BB middle")


def analyze_adx(ind: TechnicalIndicatorSet) -> WeightedSignal:
    value, plus_di, minus_di = ind.adx
    if value > 50 and plus_di > minus_di:
        return _up(95, 1.6, TREND, f"Very strong uptrend (ADX:{value:.0f})")
    if value > 50 and minus_di > plus_di:
        return _down(95, 1.6, TREND, f"Very strong downtrend (ADX:{value:.0f})")
    if value > 30 and plus_di > minus_di:
        return _up(80, 1.4, TREND, f"Strong uptrend (ADX:{value:.0f})")
    if value > 30 and minus_di > plus_di:
        return _down(80, 1.4, TREND, f"Strong downtrend (ADX:{value:.0f})")
    if value > 20 and plus_di > minus_di:
        return _up(60, 1.1, TREND, "Moderate uptrend forming")
    if value > 20 and minus_di > plus_di:
        return _down(60, 1.1, TREND, "Moderate downtrend forming")
    return _neutral(30, 0.6, TREND, "Weak trend, ranging market")


def analyze_momentum(ind: TechnicalIndicatorSet) -> WeightedSignal:
    momentum, rate = ind.momentum, ind.roc
    if momentum > 3 and rate > 3:
        return _up(85, 1.2, MOMENTUM, "Strong bullish momentum")
    if momentum < -3 and rate < -3:
        return _down(85, 1.2, MOMENTUM, "Strong bearish momentum")
    if momentum > 1.5:
        return _up(65, 1.0, MOMENTUM, "Positive momentum building")
    if momentum < -1.5:
        return _down(65, 1.0, MOMENTUM, "Negative momentum building")
    return _neutral(0, 0.8, MOMENTUM, "Momentum neutral")


def analyze_support_resistance(ind: TechnicalIndicatorSet) -> WeightedSignal:
    to_support = ind.support_resistance.distance_to_support
    to_resistance = ind.support_resistance.distance_to_resistance
    if to_support < 0.5:
        return _up(90, 1.3, PRICE_ACTION, "Price at strong support level")
    if to_resistance < 0.5:
        return _down(90, 1.3, PRICE_ACTION, "Price at strong resistance level")
    if to_support < 1.5:
        return _up(65, 1.1, PRICE_ACTION, "Price near support level")
    if to_resistance < 1.5:
        return _down(65, 1.1, PRICE_ACTION, "Price near resistance level")
    return _neutral(0, 0.9, PRICE_ACTION, "Price between support and resistance")


ANALYZERS = (
    analyze_rsi,
    analyze_stochastic,
    analyze_macd,
    analyze_moving_averages,
    analyze_bollinger,
    analyze_adx,
    analyze_momentum,
    analyze_support_resistance,
)


def collect_signals(ind: TechnicalIndicatorSet) -> list[WeightedSignal]:
    """Run every analyzer in canonical order."""
    return [analyzer(ind) for analyzer in ANALYZERS]


def analyze_volume(ind: TechnicalIndicatorSet, direction: Direction) -> float:
    """
    Signed volume bonus for a preliminary direction.

    Rising volume with positive OBV confirms UP (+25 / +15) and penalizes
    DOWN (-15 / -8); the mirror holds for falling volume. Weak volume moves
    (|volume indicator| > 5) give +8 / -5 regardless of OBV.
    """
    vol, balance = ind.volume_indicator, ind.obv
    if vol > 20 and balance > 0:
        return 25.0 if direction is Direction.UP else -15.0
    if vol > 10 and balance > 0:
        return 15.0 if direction is Direction.UP else -8.0
    if vol < -20 and balance < 0:
        return 25.0 if direction is Direction.DOWN else -15.0
    if vol < -10 and balance < 0:
        return 15.0 if direction is Direction.DOWN else -8.0
    if vol > 5:
        return 8.0 if direction is Direction.UP else -5.0
    if vol < -5:
        return 8.0 if direction is Direction.DOWN else -5.0
    return 0.0


def split_by_direction(signals: list[WeightedSignal]) -> tuple[list[WeightedSignal], list[WeightedSignal]]:
    """Return (up_signals, down_signals); neutral signals are dropped."""
    ups = [s for s in signals if s.direction is Direction.UP]
    downs = [s for s in signals if s.direction is Direction.DOWN]
    return ups, downs
