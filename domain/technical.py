"""
Technical snapshot of one candle series.

`analyze_market` reduces the indicator series in `domain.indicators` to the
latest values, plus three derived readings used by the signal analyzers:

- trend_bias: BULLISH / BEARISH / NEUTRAL vote from DI lines, EMAs and SMA50
- market_regime: ADX > 50 STRONG_TRENDING, ADX > 30 TRENDING, else RANGING
- trend_strength: 0-100 blend of ADX, distance from SMA20 and the closing run

Short series degrade to neutral defaults instead of raising.
"""

from dataclasses import dataclass
from typing import Any, NamedTuple, Sequence

from .enums import MarketRegime, TrendBias
from .indicators import (
    OHLCVData,
    adx,
    atr,
    bollinger_bands,
    ema,
    last_value,
    macd,
    obv,
    roc,
    rsi,
    sma,
    stochastic,
    support_resistance,
    volume_indicator,
)
from .primitives import Candle


STRONG_TREND_ADX = 50.0
TRENDING_ADX = 30.0
NO_TREND_ADX = 15.0


class StochasticReading(NamedTuple):
    k: float
    d: float


class MACDReading(NamedTuple):
    value: float
    signal: float
    histogram: float


class MovingAverages(NamedTuple):
    sma20: float
    sma50: float
    sma100: float
    sma200: float
    ema12: float
    ema26: float
    ema50: float


class BollingerReading(NamedTuple):
    upper: float
    middle: float
    lower: float
    bandwidth: float


class ADXReading(NamedTuple):
    value: float
    plus_di: float
    minus_di: float


class SupportResistanceReading(NamedTuple):
    nearest_support: float
    nearest_resistance: float
    distance_to_support: float
    distance_to_resistance: float


@dataclass(frozen=True)
class TechnicalIndicatorSet:
    """Latest indicator values for one candle series."""
    current_price: float
    rsi: float
    stochastic: StochasticReading
    macd: MACDReading
    moving_averages: MovingAverages
    bollinger: BollingerReading
    adx: ADXReading
    atr: float
    obv: float
    momentum: float
    roc: float
    volume_indicator: float
    volume_ma: float
    current_volume: float
    support_resistance: SupportResistanceReading
    trend_bias: TrendBias
    market_regime: MarketRegime
    trend_strength: float

    def to_dict(self) -> dict[str, Any]:
        """Camel-cased view for stage payloads."""
        return {
            "currentPrice": self.current_price,
            "rsi": self.rsi,
            "stochastic": self.stochastic._asdict(),
            "macd": self.macd._asdict(),
            "movingAverages": self.moving_averages._asdict(),
            "bollingerBands": self.bollinger._asdict(),
            "adx": {
                "value": self.adx.value,
                "plusDI": self.adx.plus_di,
                "minusDI": self.adx.minus_di,
            },
            "atr": self.atr,
            "obv": self.obv,
            "momentum": self.momentum,
            "roc": self.roc,
            "volumeIndicator": self.volume_indicator,
            "volumeMA": self.volume_ma,
            "currentVolume": self.current_volume,
            "supportResistance": {
                "nearestSupport": self.support_resistance.nearest_support,
                "nearestResistance": self.support_resistance.nearest_resistance,
                "distanceToSupport": self.support_resistance.distance_to_support,
                "distanceToResistance": self.support_resistance.distance_to_resistance,
            },
            "trendBias": self.trend_bias.value,
            "marketRegime": self.market_regime.value,
            "trendStrength": self.trend_strength,
        }


def classify_regime(adx_value: float) -> MarketRegime:
    """Map ADX to a market regime (strict thresholds)."""
    if adx_value > STRONG_TREND_ADX:
        return MarketRegime.STRONG_TRENDING
    if adx_value > TRENDING_ADX:
        return MarketRegime.TRENDING
    return MarketRegime.RANGING


def determine_trend_bias(
    reading: ADXReading,
    ema12: float,
    ema26: float,
    price: float,
    sma50: float,
) -> TrendBias:
    """Vote on trend direction.

    DI separation beyond max(5, 0.15 * ADX) is worth two points, EMA12 vs
    EMA26 and price vs SMA50 one point each, and ADX > 40 adds one point
    to whichever DI leads. No trend at all below ADX 15.
    """
    if reading.value < NO_TREND_ADX:
        return TrendBias.NEUTRAL

    di_diff = reading.plus_di - reading.minus_di
    threshold = max(5.0, reading.value * 0.15)
    bullish = 0
    bearish = 0

    if di_diff > threshold:
        bullish += 2
    elif di_diff < -threshold:
        bearish += 2

    if ema12 > ema26:
        bullish += 1
    else:
        bearish += 1

    if price > sma50:
        bullish += 1
    else:
        bearish += 1

    if reading.value > 40:
        if di_diff > 0:
            bullish += 1
        else:
            bearish += 1

    if bullish > bearish:
        return TrendBias.BULLISH
    if bearish > bullish:
        return TrendBias.BEARISH
    return TrendBias.NEUTRAL


def trend_strength(closes: Sequence[float], adx_value: float) -> float:
    """Blend ADX, percent distance from SMA20 and the latest closing run into 0-100."""
    if len(closes) < 20:
        return 0.0

    sma20 = sum(closes[-20:]) / 20
    position = (closes[-1] - sma20) / sma20 * 100 if sma20 else 0.0

    # Consecutive same-direction closes over the last 10 bars; flat counts as down
    run = 0
    last_dir = 0
    for i in range(len(closes) - 1, max(len(closes) - 11, 0), -1):
        direction = 1 if closes[i] > closes[i - 1] else -1
        if last_dir == 0:
            last_dir = direction
            run = 1
        elif direction == last_dir:
            run += 1
        else:
            break

    return min(100.0, (adx_value + abs(position) * 10 + run * 10) / 3)


def _mean_or_last(closes: list[float], period: int) -> float:
    """SMA of the last `period` closes, or the mean of all when shorter."""
    if len(closes) < period:
        return sum(closes) / len(closes)
    return sum(closes[-period:]) / period


def _pct_change(closes: list[float], period: int) -> float:
    if len(closes) < period + 1:
        return 0.0
    past = closes[-period - 1]
    return (closes[-1] - past) / past * 100 if past else 0.0


def analyze_market(candles: Sequence[Candle]) -> TechnicalIndicatorSet:
    """
    Compute the full indicator snapshot for a candle series.

    Pure and deterministic: identical series give identical snapshots.

    Raises:
        ValueError: If `candles` is empty
    """
    if not candles:
        raise ValueError("analyze_market needs at least one candle")

    data = OHLCVData.from_candles(candles)
    closes = data.closes
    price = closes[-1]

    rsi_value = last_value(rsi(closes, 14), 50.0)

    stoch = stochastic(data.highs, data.lows, closes, 14, 3)
    k = last_value(stoch.k, 50.0)
    stoch_reading = StochasticReading(k=k, d=last_value(stoch.d, k))

    macd_series = macd(closes)
    macd_reading = MACDReading(
        value=last_value(macd_series.macd, 0.0),
        signal=last_value(macd_series.signal, 0.0),
        histogram=last_value(macd_series.histogram, 0.0),
    )

    mas = MovingAverages(
        sma20=_mean_or_last(closes, 20),
        sma50=_mean_or_last(closes, 50),
        sma100=_mean_or_last(closes, 100),
        sma200=_mean_or_last(closes, 200),
        ema12=last_value(ema(closes, 12), price),
        ema26=last_value(ema(closes, 26), price),
        ema50=last_value(ema(closes, 50), price),
    )

    bands = bollinger_bands(closes, 20, 2.0)
    bollinger = BollingerReading(
        upper=last_value(bands.upper, price),
        middle=last_value(bands.middle, price),
        lower=last_value(bands.lower, price),
        bandwidth=last_value(bands.bandwidth, 0.0),
    )

    adx_series = adx(data.highs, data.lows, closes, 14)
    adx_reading = ADXReading(
        value=last_value(adx_series.adx, 0.0),
        plus_di=last_value(adx_series.plus_di, 0.0),
        minus_di=last_value(adx_series.minus_di, 0.0),
    )

    volumes = data.volumes
    current_volume = volumes[-1]
    volume_ma = sum(volumes[-20:]) / 20 if len(volumes) >= 20 else current_volume
    obv_series = obv(closes, volumes)

    levels = support_resistance(data.highs, data.lows, price)

    return TechnicalIndicatorSet(
        current_price=price,
        rsi=rsi_value,
        stochastic=stoch_reading,
        macd=macd_reading,
        moving_averages=mas,
        bollinger=bollinger,
        adx=adx_reading,
        atr=last_value(atr(data.highs, data.lows, closes, 14), 0.0),
        obv=obv_series[-1] if len(obv_series) > 1 else 0.0,
        momentum=_pct_change(closes, 10),
        roc=last_value(roc(closes, 12), 0.0),
        volume_indicator=volume_indicator(volumes),
        volume_ma=volume_ma,
        current_volume=current_volume,
        support_resistance=SupportResistanceReading(*levels),
        trend_bias=determine_trend_bias(adx_reading, mas.ema12, mas.ema26, price, mas.sma50),
        market_regime=classify_regime(adx_reading.value),
        trend_strength=trend_strength(closes, adx_reading.value),
    )
