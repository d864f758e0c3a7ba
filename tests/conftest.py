"""
Shared fixtures: candle builders, indicator snapshots and in-memory fakes
for the provider, reasoning model, channel and pipeline ports.
"""

import json
from dataclasses import replace
from typing import Any

import pytest

from config.schema import CryptomindConfig, PipelineConfig
from domain import (
    Candle,
    Direction,
    Headline,
    MarketData,
    MarketRegime,
    Sentiment,
    TechnicalIndicatorSet,
    TrendBias,
    Verdict,
)
from domain.technical import (
    ADXReading,
    BollingerReading,
    MACDReading,
    MovingAverages,
    StochasticReading,
    SupportResistanceReading,
)
from ports import ReasoningChunk, ReasoningError


BASE_TS = 1_700_000_000_000
MINUTE_MS = 60_000


# ============================================================================
# Builders
# ============================================================================

def make_candles(
    count: int = 300,
    start: float = 100.0,
    step: float = 0.05,
    volume: float = 1000.0,
    last_volume: float | None = None,
) -> list[Candle]:
    """Steadily rising minute candles."""
    candles = []
    for i in range(count):
        close = start + i * step
        open_ = close - step / 2
        candles.append(Candle(
            timestamp=BASE_TS + i * MINUTE_MS,
            open=open_,
            high=max(open_, close) + 0.1,
            low=min(open_, close) - 0.1,
            close=close,
            volume=volume,
        ))
    if last_volume is not None and candles:
        candles[-1] = replace(candles[-1], volume=last_volume)
    return candles


def make_market(pair: str = "BTC/USDT", timeframe: str = "M5", **kwargs: Any) -> MarketData:
    candles = make_candles(**kwargs)
    return MarketData(
        pair=pair,
        timeframe=timeframe,
        current_price=candles[-1].close,
        candles=candles,
        price_change_24h=1.5,
        volume_change_24h=0.0,
    )


def make_indicators(**overrides: Any) -> TechnicalIndicatorSet:
    """Snapshot where every analyzer reads NEUTRAL; override to provoke signals."""
    base = TechnicalIndicatorSet(
        current_price=100.0,
        rsi=50.0,
        stochastic=StochasticReading(50.0, 50.0),
        macd=MACDReading(0.0, 0.0, 0.0),
        moving_averages=MovingAverages(
            sma20=99.0, sma50=99.0, sma100=101.0, sma200=101.0,
            ema12=101.0, ema26=100.0, ema50=100.0,
        ),
        bollinger=BollingerReading(110.0, 100.0, 90.0, 20.0),
        adx=ADXReading(10.0, 20.0, 20.0),
        atr=1.0,
        obv=0.0,
        momentum=0.0,
        roc=0.0,
        volume_indicator=0.0,
        volume_ma=1000.0,
        current_volume=1000.0,
        support_resistance=SupportResistanceReading(95.0, 105.0, 5.0, 5.0),
        trend_bias=TrendBias.NEUTRAL,
        market_regime=MarketRegime.RANGING,
        trend_strength=0.0,
    )
    return replace(base, **overrides)


def strong_up_indicators() -> TechnicalIndicatorSet:
    """Every analyzer votes UP in a strongly trending market."""
    return make_indicators(
        rsi=15.0,
        stochastic=StochasticReading(10.0, 10.0),
        macd=MACDReading(1.0, 0.5, 0.5),
        moving_averages=MovingAverages(
            sma20=95.0, sma50=94.0, sma100=93.0, sma200=92.0,
            ema12=99.0, ema26=98.0, ema50=97.0,
        ),
        bollinger=BollingerReading(110.0, 104.75, 99.5, 20.0),
        adx=ADXReading(55.0, 30.0, 10.0),
        momentum=5.0,
        roc=5.0,
        support_resistance=SupportResistanceReading(99.7, 110.0, 0.3, 10.0),
        trend_bias=TrendBias.BULLISH,
        market_regime=MarketRegime.STRONG_TRENDING,
    )


def decision_payload(direction: str = "UP", confidence: float = 90, price: float = 100.0) -> dict[str, Any]:
    """A schema-valid decision sized around `price`."""
    sign = 1 if direction != "DOWN" else -1
    return {
        "direction": direction,
        "confidence": confidence,
        "rationale": "Momentum and trend agree.",
        "riskFactors": ["Volume could fade", "News shock"],
        "keyFactors": ["RSI recovering", "MACD bullish", "Above SMA50"],
        "tradeTargets": {
            "entry": {"low": price - 0.1, "high": price + 0.1},
            "target": {"low": price + sign * 1.0, "high": price + sign * 2.0},
            "stop": price - sign * 1.0,
        },
        "duration": "10-30 mins",
    }


def make_verdict(direction: Direction = Direction.UP, confidence: int = 90, pair: str = "BTC/USDT") -> Verdict:
    return Verdict(
        pair=pair,
        timeframe="M5",
        direction=direction,
        confidence=confidence,
        duration="5-8 minutes",
        explanation=f"{direction.value} call",
    )


# ============================================================================
# Fakes
# ============================================================================

class FakeProvider:
    """CandleProvider and NewsProvider backed by fixed data."""

    def __init__(
        self,
        market: MarketData | None = None,
        headlines: list[Headline] | None = None,
        fail_candles: Exception | None = None,
        fail_news: Exception | None = None,
        fail_timeframes: tuple[str, ...] = (),
    ):
        self.market = market or make_market()
        self.headlines = headlines if headlines is not None else [
            Headline("Bitcoin surges past resistance", "CoinDesk", Sentiment.POSITIVE, "12:00"),
        ]
        self.fail_candles = fail_candles
        self.fail_news = fail_news
        self.fail_timeframes = fail_timeframes
        self.candle_calls: list[tuple[str, str]] = []

    def fetch_candles(self, pair: str, timeframe: str) -> MarketData:
        self.candle_calls.append((pair, timeframe))
        if self.fail_candles is not None:
            raise self.fail_candles
        if timeframe in self.fail_timeframes:
            raise RuntimeError(f"{timeframe} unavailable")
        return replace(self.market, pair=pair, timeframe=timeframe)

    def fetch_headlines(self, pair: str, limit: int = 50) -> list[Headline]:
        if self.fail_news is not None:
            raise self.fail_news
        return self.headlines[:limit]


class ScriptedModel:
    """
    ReasoningModel replaying a script per model name.

    A script is a list of ReasoningChunk or an Exception raised mid-stream.
    """

    def __init__(self, scripts: dict[str, list[Any]]):
        self.scripts = scripts
        self.calls: list[str] = []
        self.prompts: list[str] = []

    async def stream(self, model: str, system_prompt: str, prompt: str, schema: dict[str, Any]):
        self.calls.append(model)
        self.prompts.append(prompt)
        for item in self.scripts.get(model, []):
            if isinstance(item, Exception):
                raise item
            yield item


def decision_script(thoughts: list[str] | None = None, **payload_kwargs: Any) -> list[ReasoningChunk]:
    chunks = [ReasoningChunk(True, t) for t in (thoughts or [])]
    chunks.append(ReasoningChunk(False, json.dumps(decision_payload(**payload_kwargs))))
    return chunks


def failing_script(model: str) -> list[Any]:
    return [ReasoningError(model, "overloaded")]


class RecordingChannel:
    """LiveChannel that keeps every payload; `on_send` hooks run after recording."""

    def __init__(self, open_: bool = True):
        self.messages: list[dict[str, Any]] = []
        self._open = open_
        self.on_send = None

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        self._open = False

    async def send(self, payload: dict[str, Any]) -> None:
        self.messages.append(payload)
        if self.on_send is not None:
            self.on_send(payload)

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [m for m in self.messages if m.get("type") == kind]

    def stages(self, name: str | None = None) -> list[dict[str, Any]]:
        stages = self.of_type("analysis_stage")
        if name is not None:
            stages = [m for m in stages if m["stage"] == name]
        return stages


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def fast_settings():
    """Pipeline settings with pacing disabled."""
    return PipelineConfig(pace_scale=0.0, ack_timeout_seconds=5.0)


@pytest.fixture
def fast_config():
    return CryptomindConfig(pipeline={"pace_scale": 0.0, "ack_timeout_seconds": 5.0})


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def provider():
    return FakeProvider()
