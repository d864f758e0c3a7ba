"""
Synthetic candle fill for degraded provider responses.

Series are generated from a RNG seeded on pair and timeframe so repeated
fallbacks for the same request are reproducible.
"""

import random
import time

from domain import Candle

TIMEFRAME_MINUTES = {
    "M1": 1,
    "M3": 3,
    "M5": 5,
    "M15": 15,
    "M30": 30,
    "M45": 45,
    "H1": 60,
    "H2": 120,
    "H3": 180,
    "H4": 240,
    "D1": 1440,
    "W1": 10080,
}

NOISE = 0.01        # +/-0.5% around the anchor price
WICK = 0.001
SYNTHETIC_VOLUME = 1000.0


def interval_ms(timeframe: str) -> int:
    return TIMEFRAME_MINUTES.get(timeframe, 5) * 60 * 1000


def synthesize_candles(
    pair: str,
    timeframe: str,
    price: float,
    count: int,
    end_timestamp: int | None = None,
) -> list[Candle]:
    """
    Build `count` ascending candles around `price` ending one interval
    before `end_timestamp` (now when omitted).
    """
    if count <= 0:
        return []

    rng = random.Random(f"{pair}:{timeframe}")
    step = interval_ms(timeframe)
    end = end_timestamp if end_timestamp is not None else int(time.time() * 1000)

    candles = []
    for i in range(count):
        close = price * (1 + (rng.random() - 0.5) * NOISE)
        candles.append(Candle(
            timestamp=end - (count - i) * step,
            open=close,
            high=close * (1 + WICK),
            low=close * (1 - WICK),
            close=close,
            volume=SYNTHETIC_VOLUME,
        ))
    return candles


def pad_to_window(
    pair: str,
    timeframe: str,
    candles: list[Candle],
    price: float,
    window: int,
) -> tuple[list[Candle], bool]:
    """
    Trim to the last `window` candles, prepending synthetic ones when short.

    Returns the series and whether any candle was fabricated.
    """
    candles = candles[-window:]
    missing = window - len(candles)
    if missing <= 0:
        return candles, False

    end = candles[0].timestamp if candles else None
    return synthesize_candles(pair, timeframe, price, missing, end) + candles, True


def volume_change(candles: list[Candle]) -> float:
    """Recent (last 10) mean volume vs whole-window mean, in percent."""
    if not candles:
        return 0.0
    average = sum(c.volume for c in candles) / len(candles)
    recent = sum(c.volume for c in candles[-10:]) / 10
    return (recent / average - 1) * 100 if average > 0 else 0.0
