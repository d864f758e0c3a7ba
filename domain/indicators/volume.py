"""Volume-based indicators."""

from domain.indicators.base import check_same_length
from domain.indicators.trend import sma


def obv(closes: list[float], volumes: list[float]) -> list[float]:
    """Calculate On-Balance Volume.

    Adds the bar's volume when the close rises, subtracts it when the
    close falls, and carries the total on unchanged closes.

    Example:
        >>> obv([10, 11, 10, 12, 11], [1000, 1500, 1200, 1800, 1000])
        [0.0, 1500.0, 300.0, 2100.0, 1100.0]
    """
    check_same_length(closes, volumes)
    if not closes:
        return []

    result = [0.0]
    total = 0.0
    for i in range(1, len(closes)):
        if closes[i] > closes[i - 1]:
            total += volumes[i]
        elif closes[i] < closes[i - 1]:
            total -= volumes[i]
        result.append(total)
    return result


def volume_sma(volumes: list[float], period: int = 20) -> list[float | None]:
    """Simple moving average of volume."""
    return sma(volumes, period)


def volume_indicator(volumes: list[float], window: int = 5) -> float:
    """Percentage change of mean volume over the last `window` bars vs the window before.

    Returns 0 when fewer than 2 * window bars exist or the older window
    has no volume.

    Example:
        >>> volume_indicator([100] * 5 + [150] * 5)
        50.0
    """
    if len(volumes) < 2 * window:
        return 0.0

    recent = sum(volumes[-window:]) / window
    older = sum(volumes[-2 * window:-window]) / window
    if older == 0:
        return 0.0
    return (recent / older - 1.0) * 100.0
