"""Tests for technical indicators library."""

import math

import pytest
from domain.indicators import (
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
    swing_pivots,
    true_range,
    volume_indicator,
    volume_sma,
)
from domain.primitives import Candle
from domain.technical import analyze_market


class TestMovingAverages:
    """Test moving average indicators."""

    def test_sma_basic(self):
        prices = [10, 11, 12, 13, 14, 15]
        result = sma(prices, 3)
        assert result[:2] == [None, None]
        assert result[2] == 11.0
        assert result[-1] == 14.0

    def test_sma_insufficient_data(self):
        assert sma([10, 11], 3) == [None, None]

    def test_sma_window_with_none(self):
        result = sma([None, 1, 2, 3], 2)
        assert result[1] is None
        assert result[2] == 1.5

    def test_ema_seeded_with_sma(self):
        prices = [10, 11, 12, 13, 14, 15]
        result = ema(prices, 3)
        assert result[2] == 11.0
        assert result[-1] > result[-2]


class TestRSI:
    """Test RSI indicator."""

    def test_rsi_basic(self):
        closes = [44, 44.34, 44.09, 43.61, 44.33, 44.83, 45.10, 45.42,
                  45.84, 46.08, 45.89, 46.03, 45.61, 46.28, 46.28, 46.00]
        result = rsi(closes, 14)

        assert all(v is None for v in result[:14])
        assert 0 <= result[14] <= 100

    def test_rsi_range(self):
        assert rsi(list(range(1, 20)), 14)[-1] > 70
        assert rsi(list(range(20, 1, -1)), 14)[-1] < 30

    def test_rsi_flat_series_is_midpoint(self):
        assert rsi([100.0] * 30, 14)[-1] == 50.0


class TestMACD:
    """Test MACD indicator."""

    def test_macd_basic(self):
        closes = list(range(10, 50))
        macd_line, signal_line, histogram = macd(closes)

        assert macd_line[-1] is not None
        assert signal_line[-1] is not None
        assert abs(histogram[-1] - (macd_line[-1] - signal_line[-1])) < 0.001

    def test_macd_uptrend_positive(self):
        series = macd(list(range(10, 60)))
        assert series.macd[-1] > 0

    def test_macd_short_series(self):
        series = macd([1.0] * 10)
        assert series.macd == [None] * 10


class TestBollingerBands:
    """Test Bollinger Bands indicator."""

    def test_bollinger_basic(self):
        closes = [20, 21, 22, 23, 24, 25, 24, 23, 22, 21,
                  20, 21, 22, 23, 24, 25, 26, 27, 28, 29, 30]
        bands = bollinger_bands(closes, period=20)

        assert bands.upper[-1] > bands.middle[-1] > bands.lower[-1]
        assert abs(bands.middle[-1] - sma(closes, 20)[-1]) < 0.001
        assert bands.bandwidth[-1] > 0

    def test_bollinger_flat(self):
        bands = bollinger_bands([100] * 25, period=20)
        assert bands.upper[-1] == bands.middle[-1] == bands.lower[-1]
        assert bands.bandwidth[-1] == 0.0


class TestATR:
    """Test ATR indicator."""

    def test_true_range_uses_previous_close(self):
        result = true_range([10, 12], [9, 11], [9.5, 11.5])
        assert result == [1, 2.5]

    def test_atr_basic(self):
        highs = [48, 49, 50, 51, 52] * 5
        lows = [46, 47, 48, 49, 50] * 5
        closes = [47, 48, 49, 50, 51] * 5

        result = atr(highs, lows, closes, 14)

        assert result[13] is None
        assert result[14] is not None
        assert result[-1] > 0

    def test_atr_increasing_volatility(self):
        calm = atr([101] * 15, [99] * 15, [100] * 15, 14)
        wild = atr([110, 90, 110, 90, 110] * 3, [90, 110, 90, 110, 90] * 3, [100] * 15, 14)
        assert wild[-1] > calm[-1]


class TestStochastic:
    """Test Stochastic Oscillator."""

    def test_stochastic_basic(self):
        highs = list(range(50, 69))
        lows = list(range(48, 67))
        closes = list(range(49, 68))

        k, d = stochastic(highs, lows, closes, 14, 3)

        assert 0 <= k[-1] <= 100
        assert 0 <= d[-1] <= 100

    def test_stochastic_flat_window(self):
        k, _ = stochastic([10] * 14, [10] * 14, [10] * 14)
        assert k[-1] == 50.0


class TestADX:
    """Test ADX indicator."""

    def test_adx_lengths(self):
        series = adx([50] * 30, [48] * 30, [49] * 30, 14)
        assert len(series.adx) == len(series.plus_di) == len(series.minus_di) == 30

    def test_adx_strong_uptrend(self):
        highs = [100 + i * 2 for i in range(60)]
        lows = [h - 1 for h in highs]
        closes = [h - 0.5 for h in highs]

        series = adx(highs, lows, closes, 14)

        assert series.adx[-1] > 50
        assert series.plus_di[-1] > series.minus_di[-1]

    def test_adx_insufficient_data(self):
        series = adx([1, 2], [0, 1], [0.5, 1.5], 14)
        assert series.adx == [None, None]


class TestVolumeIndicators:
    """Test volume-based indicators."""

    def test_obv_basic(self):
        result = obv([10, 11, 10, 12, 11], [1000, 1500, 1200, 1800, 1000])
        assert result == [0, 1500, 300, 2100, 1100]

    def test_volume_sma(self):
        assert volume_sma([1000] * 20 + [3000], 20)[-1] == 1100.0

    def test_volume_indicator(self):
        assert volume_indicator([100] * 5 + [150] * 5) == 50.0
        assert volume_indicator([100] * 9) == 0.0
        assert volume_indicator([0] * 5 + [10] * 5) == 0.0


class TestMomentum:
    """Test rate of change."""

    def test_roc_basic(self):
        prices = [100, 105, 110, 115, 120, 125, 130, 135, 140, 145, 150, 155, 160]
        assert roc(prices, 12)[-1] == 60.0


class TestLevels:
    """Test swing pivots and support/resistance."""

    def test_swing_pivots(self):
        highs = [1, 2, 3, 4, 5, 9, 5, 4, 3, 2, 1]
        lows = [h - 0.5 for h in highs]
        assert swing_pivots(highs, lows) == [9]

    def test_short_series_defaults(self):
        levels = support_resistance([101] * 10, [99] * 10, 100.0)
        assert levels.distance_to_support == 2.0
        assert levels.distance_to_resistance == 2.0

    def test_nearest_levels(self):
        # V shape: swing low at 90 sits below the price
        highs = [110 - i for i in range(12)] + [99 + i for i in range(12)]
        lows = [h - 1 for h in highs]
        levels = support_resistance(highs, lows, 100.0)
        assert levels.nearest_support < 100.0
        assert levels.distance_to_support > 0
        # No swing high above the price: +3% default
        assert levels.nearest_resistance == pytest.approx(103.0)


class TestDeterminism:
    """Identical candle input gives an identical indicator snapshot."""

    @staticmethod
    def _wavy_candles(count: int = 300) -> list[Candle]:
        candles = []
        for i in range(count):
            close = 100 + 5 * math.sin(i / 7) + i * 0.02
            open_ = close - 0.3 * math.cos(i / 3)
            candles.append(Candle(
                timestamp=i * 60_000,
                open=open_,
                high=max(open_, close) + 0.4,
                low=min(open_, close) - 0.4,
                close=close,
                volume=1000 + 200 * math.sin(i / 5),
            ))
        return candles

    def test_analyze_market_is_deterministic(self):
        first = analyze_market(self._wavy_candles())
        second = analyze_market(self._wavy_candles())

        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_input_series_not_mutated(self):
        candles = self._wavy_candles()
        before = list(candles)
        analyze_market(candles)
        assert candles == before


class TestEdgeCases:
    """Test edge cases and error handling."""

    def test_empty_lists(self):
        assert rsi([], 14) == []
        assert sma([], 20) == []
        assert obv([], []) == []

    def test_mismatched_lengths(self):
        with pytest.raises(ValueError):
            atr([1, 2], [1, 2], [1, 2, 3], 14)
        with pytest.raises(ValueError):
            obv([1, 2], [1, 2, 3])

    def test_last_value(self):
        assert last_value([None, 1.0, None], 5.0) == 1.0
        assert last_value([None, None], 5.0) == 5.0

    def test_ohlcv_from_candles(self):
        candles = [Candle(i * 60_000, 1.0, 2.0, 0.5, 1.5, 10.0) for i in range(3)]
        data = OHLCVData.from_candles(candles)
        assert len(data) == 3
        assert data.highs == [2.0, 2.0, 2.0]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
