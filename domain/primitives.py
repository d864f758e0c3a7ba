from dataclasses import dataclass, field
from typing import Any

from .enums import Sentiment


@dataclass(frozen=True)
class Candle:
    """
    One OHLCV bar for a fixed time bucket.

    Timestamps are epoch milliseconds.
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    def __post_init__(self) -> None:
        if self.high < self.low:
            raise ValueError(f"high {self.high} below low {self.low} at {self.timestamp}")
        if self.volume < 0:
            raise ValueError(f"volume must be >= 0, got {self.volume}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def validate_series(candles: list[Candle]) -> None:
    """
    Check that a candle series is strictly ascending by timestamp.

    Raises:
        ValueError: On out-of-order or duplicate timestamps
    """
    for prev, curr in zip(candles, candles[1:]):
        if curr.timestamp <= prev.timestamp:
            raise ValueError(
                f"candles must be strictly ascending: {curr.timestamp} follows {prev.timestamp}"
            )


@dataclass(frozen=True)
class MarketData:
    """
    Candle window plus headline figures returned by a candle provider.

    `synthetic` is set whenever any part of the window was fabricated
    because the provider failed or returned a short series.
    """
    pair: str
    timeframe: str
    current_price: float
    candles: list[Candle] = field(default_factory=list)
    price_change_24h: float = 0.0
    volume_change_24h: float = 0.0
    synthetic: bool = False

    @property
    def current_volume(self) -> float:
        return self.candles[-1].volume if self.candles else 0.0


@dataclass(frozen=True)
class Headline:
    """News headline with keyword sentiment."""
    title: str
    source: str
    sentiment: Sentiment = Sentiment.NEUTRAL
    published_at: str = ""
    url: str | None = None

    def context_line(self) -> str:
        return f"{self.source}: {self.title}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "source": self.source,
            "sentiment": self.sentiment.value,
            "publishedAt": self.published_at,
            "url": self.url,
        }
