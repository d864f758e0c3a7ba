"""Swing pivots and nearest support/resistance levels."""

from typing import NamedTuple

from domain.indicators.base import check_same_length


class SupportResistance(NamedTuple):
    """Nearest levels around the current price; distances are percent of price."""
    nearest_support: float
    nearest_resistance: float
    distance_to_support: float
    distance_to_resistance: float


def swing_pivots(highs: list[float], lows: list[float], window: int = 5) -> list[float]:
    """Collect swing highs and lows.

    A bar is a swing high when its high is >= every other high within
    `window` bars on each side, and a swing low symmetrically.

    Example:
        >>> highs = [1, 2, 3, 4, 5, 9, 5, 4, 3, 2, 1]
        >>> lows = [h - 0.5 for h in highs]
        >>> swing_pivots(highs, lows)
        [9]
    """
    check_same_length(highs, lows)
    pivots = []
    for i in range(window, len(highs) - window):
        neighbours = [j for j in range(i - window, i + window + 1) if j != i]
        if all(highs[i] >= highs[j] for j in neighbours):
            pivots.append(highs[i])
        if all(lows[i] <= lows[j] for j in neighbours):
            pivots.append(lows[i])
    return pivots


def support_resistance(
    highs: list[float],
    lows: list[float],
    price: float,
    window: int = 5,
    min_bars: int = 20,
) -> SupportResistance:
    """Find the closest swing level below and above `price`.

    Short series (< min_bars) report +/-2% levels at distance 2.
    Without a pivot on one side the level defaults to +/-3%.
    """
    if len(highs) < min_bars or price <= 0:
        return SupportResistance(price * 0.98, price * 1.02, 2.0, 2.0)

    pivots = swing_pivots(highs, lows, window)
    supports = [p for p in pivots if p < price]
    resistances = [p for p in pivots if p > price]

    support = max(supports) if supports else price * 0.97
    resistance = min(resistances) if resistances else price * 1.03

    return SupportResistance(
        nearest_support=support,
        nearest_resistance=resistance,
        distance_to_support=(price - support) / price * 100.0,
        distance_to_resistance=(resistance - price) / price * 100.0,
    )
