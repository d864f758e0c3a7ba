"""Bounded momentum oscillators: RSI, stochastic and rate of change."""

from typing import NamedTuple

from domain.indicators.base import check_same_length
from domain.indicators.trend import sma


class StochasticSeries(NamedTuple):
    """%K and %D lines of the stochastic oscillator."""
    k: list[float | None]
    d: list[float | None]


def rsi(closes: list[float], period: int = 14) -> list[float | None]:
    """Calculate RSI using Wilder's smoothing.

    Args:
        closes: Closing prices
        period: RSI period (default: 14)

    Returns:
        RSI values on a 0-100 scale, None until `period` changes are available

    Example:
        >>> closes = [100 + i for i in range(20)]
        >>> rsi(closes)[-1]
        100.0
    """
    if not closes or period <= 0 or len(closes) <= period:
        return [None] * len(closes)

    result: list[float | None] = [None] * period

    gains = []
    losses = []
    for i in range(1, period + 1):
        delta = closes[i] - closes[i - 1]
        gains.append(max(delta, 0.0))
        losses.append(max(-delta, 0.0))

    # WHY: First average is simple, later ones use Wilder's RMA
    avg_gain = sum(gains) / period
    avg_loss = sum(losses) / period
    result.append(_rsi_from_averages(avg_gain, avg_loss))

    for i in range(period + 1, len(closes)):
        delta = closes[i] - closes[i - 1]
        avg_gain = (avg_gain * (period - 1) + max(delta, 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + max(-delta, 0.0)) / period
        result.append(_rsi_from_averages(avg_gain, avg_loss))

    return result


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        # Flat series has no gains either
        return 50.0 if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def stochastic(
    highs: list[float],
    lows: list[float],
    closes: list[float],
    k_period: int = 14,
    d_period: int = 3,
) -> StochasticSeries:
    """Calculate the stochastic oscillator.

    %K = 100 * (close - lowest low) / (highest high - lowest low)
    %D = SMA(%K, d_period)

    Flat windows report 50 rather than dividing by zero.
    """
    check_same_length(highs, lows, closes)
    n = len(closes)
    if n < k_period:
        return StochasticSeries([None] * n, [None] * n)

    k_values: list[float | None] = [None] * (k_period - 1)
    for i in range(k_period - 1, n):
        highest_high = max(highs[i - k_period + 1:i + 1])
        lowest_low = min(lows[i - k_period + 1:i + 1])
        if highest_high == lowest_low:
            k_values.append(50.0)
        else:
            k_values.append(100.0 * (closes[i] - lowest_low) / (highest_high - lowest_low))

    return StochasticSeries(k_values, sma(k_values, d_period))


def roc(closes: list[float], period: int = 12) -> list[float | None]:
    """Calculate rate of change as a percentage.

    ROC = 100 * (close - close[period ago]) / close[period ago]

    Example:
        >>> roc([100, 105, 110, 115, 120, 125, 130, 135, 140, 145, 150, 155, 160], 12)[-1]
        60.0
    """
    if not closes or period <= 0 or len(closes) <= period:
        return [None] * len(closes)

    result: list[float | None] = [None] * period
    for i in range(period, len(closes)):
        past = closes[i - period]
        result.append(None if past == 0 else 100.0 * (closes[i] - past) / past)
    return result
