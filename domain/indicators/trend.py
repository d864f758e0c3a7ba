"""Trend indicators: moving averages, MACD and ADX with +DI/-DI."""

from typing import NamedTuple

from domain.indicators.base import check_same_length


class MACDSeries(NamedTuple):
    macd: list[float | None]
    signal: list[float | None]
    histogram: list[float | None]


class ADXSeries(NamedTuple):
    """ADX line with the directional indicators it is built from."""
    adx: list[float | None]
    plus_di: list[float | None]
    minus_di: list[float | None]


def sma(values: list[float | None], period: int) -> list[float | None]:
    """Calculate Simple Moving Average.

    Windows containing a None produce None.

    Example:
        >>> sma([10, 11, 12, 13, 14, 15], 3)
        [None, None, 11.0, 12.0, 13.0, 14.0]
    """
    if not values or period <= 0 or len(values) < period:
        return [None] * len(values)

    result: list[float | None] = [None] * (period - 1)
    for i in range(period - 1, len(values)):
        window = values[i - period + 1:i + 1]
        if any(v is None for v in window):
            result.append(None)
        else:
            result.append(sum(window) / period)
    return result


def ema(values: list[float], period: int) -> list[float | None]:
    """Calculate Exponential Moving Average seeded with the first SMA.

    alpha = 2 / (period + 1)

    Example:
        >>> ema([10, 11, 12, 13, 14, 15], 3)[-1]
        14.0
    """
    if not values or period <= 0 or len(values) < period:
        return [None] * len(values)

    alpha = 2.0 / (period + 1)
    result: list[float | None] = [None] * (period - 1)
    current = sum(values[:period]) / period
    result.append(current)

    for value in values[period:]:
        current = value * alpha + current * (1 - alpha)
        result.append(current)
    return result


def macd(
    closes: list[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDSeries:
    """Calculate MACD line, signal line and histogram.

    MACD = EMA(fast) - EMA(slow); signal = EMA(MACD, signal);
    histogram = MACD - signal.
    """
    n = len(closes)
    if n < slow:
        return MACDSeries([None] * n, [None] * n, [None] * n)

    fast_ema = ema(closes, fast)
    slow_ema = ema(closes, slow)
    macd_line: list[float | None] = [
        None if f is None or s is None else f - s
        for f, s in zip(fast_ema, slow_ema)
    ]

    # WHY: Signal EMA only runs over the defined part of the MACD line
    first = slow - 1
    signal_values = ema([v for v in macd_line[first:]], signal)
    signal_line: list[float | None] = [None] * first + signal_values

    histogram: list[float | None] = [
        None if m is None or s is None else m - s
        for m, s in zip(macd_line, signal_line)
    ]
    return MACDSeries(macd_line, signal_line, histogram)


def _wilder_smooth(values: list[float], period: int) -> list[float | None]:
    """Wilder's RMA: simple average seed, then (prev * (n-1) + x) / n."""
    if len(values) < period:
        return [None] * len(values)

    result: list[float | None] = [None] * (period - 1)
    current = sum(values[:period]) / period
    result.append(current)
    for value in values[period:]:
        current = (current * (period - 1) + value) / period
        result.append(current)
    return result


def adx(
    highs: list[float],
    lows: list[float],
    closes: list[float],
    period: int = 14,
) -> ADXSeries:
    """Calculate the Average Directional Index with +DI and -DI.

    All three lines are on a 0-100 scale. ADX needs about 2 * period bars
    before it is defined; +DI/-DI appear after `period` bars.

    Raises:
        ValueError: If the input series differ in length
    """
    check_same_length(highs, lows, closes)
    n = len(closes)
    if n < 2 * period:
        return ADXSeries([None] * n, [None] * n, [None] * n)

    plus_dm = []
    minus_dm = []
    true_range = []
    for i in range(1, n):
        up_move = highs[i] - highs[i - 1]
        down_move = lows[i - 1] - lows[i]
        plus_dm.append(up_move if up_move > down_move and up_move > 0 else 0.0)
        minus_dm.append(down_move if down_move > up_move and down_move > 0 else 0.0)
        true_range.append(max(
            highs[i] - lows[i],
            abs(highs[i] - closes[i - 1]),
            abs(lows[i] - closes[i - 1]),
        ))

    smooth_plus = _wilder_smooth(plus_dm, period)
    smooth_minus = _wilder_smooth(minus_dm, period)
    smooth_tr = _wilder_smooth(true_range, period)

    plus_di: list[float | None] = [None]
    minus_di: list[float | None] = [None]
    dx: list[float] = []
    for sp, sm, tr in zip(smooth_plus, smooth_minus, smooth_tr):
        if tr is None:
            plus_di.append(None)
            minus_di.append(None)
            continue
        pdi = 100.0 * sp / tr if tr else 0.0
        mdi = 100.0 * sm / tr if tr else 0.0
        plus_di.append(pdi)
        minus_di.append(mdi)
        di_sum = pdi + mdi
        dx.append(100.0 * abs(pdi - mdi) / di_sum if di_sum else 0.0)

    adx_values = _wilder_smooth(dx, period)
    leading = n - len(adx_values)
    return ADXSeries([None] * leading + adx_values, plus_di, minus_di)
