"""Volatility indicators: true range, ATR and Bollinger Bands."""

from typing import NamedTuple

from domain.indicators.base import check_same_length
from domain.indicators.trend import sma


class BollingerSeries(NamedTuple):
    """Bollinger lines plus bandwidth as a percentage of the middle band."""
    upper: list[float | None]
    middle: list[float | None]
    lower: list[float | None]
    bandwidth: list[float | None]


def true_range(highs: list[float], lows: list[float], closes: list[float]) -> list[float]:
    """True range per bar; the first bar has no previous close and uses high - low."""
    check_same_length(highs, lows, closes)
    if not closes:
        return []
    result = [highs[0] - lows[0]]
    for i in range(1, len(closes)):
        result.append(max(
            highs[i] - lows[i],
            abs(highs[i] - closes[i - 1]),
            abs(lows[i] - closes[i - 1]),
        ))
    return result


def atr(
    highs: list[float],
    lows: list[float],
    closes: list[float],
    period: int = 14,
) -> list[float | None]:
    """Calculate Average True Range using Wilder's smoothing.

    The first value (at index `period`) is the simple mean of the first
    `period` true ranges that have a previous close.

    Raises:
        ValueError: If the input series differ in length
    """
    ranges = true_range(highs, lows, closes)
    n = len(ranges)
    if n <= period:
        return [None] * n

    result: list[float | None] = [None] * period
    current = sum(ranges[1:period + 1]) / period
    result.append(current)
    for tr in ranges[period + 1:]:
        current = (current * (period - 1) + tr) / period
        result.append(current)
    return result


def bollinger_bands(
    closes: list[float],
    period: int = 20,
    std_dev: float = 2.0,
) -> BollingerSeries:
    """Calculate Bollinger Bands with population standard deviation.

    Example:
        >>> bands = bollinger_bands([100.0] * 25)
        >>> bands.upper[-1] == bands.middle[-1] == bands.lower[-1]
        True
    """
    n = len(closes)
    if n < period:
        return BollingerSeries([None] * n, [None] * n, [None] * n, [None] * n)

    middle = sma(closes, period)
    upper: list[float | None] = [None] * (period - 1)
    lower: list[float | None] = [None] * (period - 1)
    bandwidth: list[float | None] = [None] * (period - 1)

    for i in range(period - 1, n):
        mean = middle[i]
        window = closes[i - period + 1:i + 1]
        std = (sum((x - mean) ** 2 for x in window) / period) ** 0.5
        up = mean + std_dev * std
        low = mean - std_dev * std
        upper.append(up)
        lower.append(low)
        bandwidth.append((up - low) / mean * 100.0 if mean else 0.0)

    return BollingerSeries(upper, middle, lower, bandwidth)
