"""Base types and helpers shared by the indicator series functions."""

from dataclasses import dataclass
from typing import Sequence

from domain.primitives import Candle


@dataclass(frozen=True)
class OHLCVData:
    """Column view over a candle series.

    Attributes:
        timestamps: Epoch milliseconds, ascending
        opens: Opening prices
        highs: High prices
        lows: Low prices
        closes: Closing prices
        volumes: Traded volume per bar

    Example:
        >>> data = OHLCVData.from_candles(candles)
        >>> data.closes[-1] == candles[-1].close
        True
    """
    timestamps: list[int]
    opens: list[float]
    highs: list[float]
    lows: list[float]
    closes: list[float]
    volumes: list[float]

    @classmethod
    def from_candles(cls, candles: Sequence[Candle]) -> "OHLCVData":
        return cls(
            timestamps=[c.timestamp for c in candles],
            opens=[c.open for c in candles],
            highs=[c.high for c in candles],
            lows=[c.low for c in candles],
            closes=[c.close for c in candles],
            volumes=[c.volume for c in candles],
        )

    def __len__(self) -> int:
        return len(self.closes)


def last_value(series: Sequence[float | None], default: float) -> float:
    """Return the most recent non-None value of a series, or `default`."""
    for value in reversed(series):
        if value is not None:
            return value
    return default


def check_same_length(*series: Sequence[float]) -> None:
    """Raise ValueError unless every series has the same length."""
    lengths = {len(s) for s in series}
    if len(lengths) > 1:
        raise ValueError(f"series must have same length, got {sorted(lengths)}")
