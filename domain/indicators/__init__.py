"""Technical indicator series for candle analysis.

Pure Python implementations. Every function takes plain lists and returns
lists aligned with the input, padded with None where the lookback is not
yet satisfied.

Indicators:
    - Oscillators: RSI (Wilder), stochastic %K/%D, rate of change
    - Trend: SMA, EMA, MACD, ADX with +DI/-DI
    - Volatility: true range, ATR (Wilder), Bollinger Bands with bandwidth
    - Volume: OBV, volume SMA, recent-vs-prior volume change
    - Levels: swing pivots, nearest support/resistance

Example:
    >>> from domain.indicators import OHLCVData, rsi, macd, bollinger_bands
    >>>
    >>> data = OHLCVData.from_candles(candles)
    >>> rsi_values = rsi(data.closes, period=14)
    >>> macd_line, signal_line, histogram = macd(data.closes)
    >>> upper, middle, lower, bandwidth = bollinger_bands(data.closes)
"""

from domain.indicators.base import OHLCVData, check_same_length, last_value
from domain.indicators.levels import SupportResistance, support_resistance, swing_pivots
from domain.indicators.oscillators import StochasticSeries, roc, rsi, stochastic
from domain.indicators.trend import ADXSeries, MACDSeries, adx, ema, macd, sma
from domain.indicators.volatility import BollingerSeries, atr, bollinger_bands, true_range
from domain.indicators.volume import obv, volume_indicator, volume_sma

__all__ = [
    # Base types
    "OHLCVData",
    "last_value",
    "check_same_length",
    # Oscillators
    "StochasticSeries",
    "rsi",
    "stochastic",
    "roc",
    # Trend
    "MACDSeries",
    "ADXSeries",
    "sma",
    "ema",
    "macd",
    "adx",
    # Volatility
    "BollingerSeries",
    "true_range",
    "atr",
    "bollinger_bands",
    # Volume
    "obv",
    "volume_sma",
    "volume_indicator",
    # Levels
    "SupportResistance",
    "swing_pivots",
    "support_resistance",
]
