"""
Yahoo Finance chart adapter.

Serves pairs with no crypto market (index futures such as US100/USD via
NQ=F) from the public v8 chart endpoint. No API key required.

Unlike CryptoCompareAdapter this adapter raises on failure so the caller
can fall back to another provider.
"""

import logging
import urllib.parse
from typing import Any

from domain import Candle, MarketData
from ports import DataError, ValidationError

from .base import BaseAdapter
from .synthetic import pad_to_window

logger = logging.getLogger(__name__)

# Timeframe -> chart interval
INTERVALS = {
    "M1": "1m",
    "M3": "2m",
    "M5": "5m",
    "M15": "15m",
    "M30": "30m",
    "H1": "1h",
    "H2": "1h",
    "H4": "1h",
    "D1": "1d",
    "W1": "1wk",
}

# Timeframe -> lookback range
RANGES = {
    "M1": "1d",
    "M5": "1d",
    "M15": "5d",
    "H1": "1mo",
    "D1": "1y",
    "W1": "5y",
}


def _pick(series: list[Any], i: int) -> float | None:
    if i < len(series) and series[i]:
        return float(series[i])
    return None


class YahooChartAdapter(BaseAdapter):
    """
    Yahoo Finance chart data adapter.

    Provides candle windows for symbols mapped in `market_data.yahoo_symbols`.
    """

    # Yahoo rejects bare bot agents on the chart endpoint
    BROWSER_AGENT = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    )

    @property
    def source_name(self) -> str:
        return "yahoo"

    def _default_headers(self) -> dict[str, str]:
        return {"User-Agent": self.BROWSER_AGENT}

    def fetch_candles(self, pair: str, timeframe: str) -> MarketData:
        """
        Fetch a candle window from the chart endpoint.

        Raises:
            ValidationError: If the pair has no Yahoo symbol
            FetchError / ParseError: On transport failures
            DataError: If the chart has no usable result
        """
        pair = pair.upper()
        market = self._config.market_data
        symbol = market.yahoo_symbols.get(pair)
        if not symbol:
            raise ValidationError.invalid_pair(pair, "No Yahoo symbol configured")

        interval = INTERVALS.get(timeframe, "15m")
        lookback = RANGES.get(timeframe, "5d")
        url = (
            f"{market.yahoo_base_url.rstrip('/')}/v8/finance/chart/"
            f"{urllib.parse.quote(symbol)}?interval={interval}&range={lookback}"
        )

        data = self._cached("candles", lambda: self._http_get_json(url), url=url)
        result = self._first_result(data, symbol)

        meta = result.get("meta") or {}
        price = meta.get("regularMarketPrice")
        if not price:
            raise DataError.missing(self.source_name, "regularMarketPrice")
        price = float(price)
        previous = float(meta.get("previousClose") or price)
        change_24h = (price - previous) / previous * 100 if previous else 0.0

        history = self._convert(result)
        candles, padded = pad_to_window(pair, timeframe, history, price, market.candle_window)

        logger.info(f"Fetched {pair} via {symbol}: ${price}")
        return MarketData(
            pair=pair,
            timeframe=timeframe,
            current_price=price,
            candles=candles,
            price_change_24h=change_24h,
            volume_change_24h=0.0,
            synthetic=padded,
        )

    def _first_result(self, data: Any, symbol: str) -> dict[str, Any]:
        try:
            result = data["chart"]["result"][0]
        except (KeyError, IndexError, TypeError):
            raise DataError.empty(self.source_name, f"No chart result for {symbol}")
        if not isinstance(result, dict):
            raise DataError.empty(self.source_name, f"No chart result for {symbol}")
        return result

    def _convert(self, result: dict[str, Any]) -> list[Candle]:
        """Chart arrays to ascending candles, dropping empty bars."""
        timestamps = result.get("timestamp") or []
        quotes = ((result.get("indicators") or {}).get("quote") or [{}])[0]
        opens = quotes.get("open") or []
        highs = quotes.get("high") or []
        lows = quotes.get("low") or []
        closes = quotes.get("close") or []
        volumes = quotes.get("volume") or []

        candles: list[Candle] = []
        for i, ts in enumerate(timestamps):
            close = _pick(closes, i) or _pick(opens, i)
            open_ = _pick(opens, i) or close
            if not open_ or not close:
                continue
            high = max(_pick(highs, i) or close, open_, close)
            low = min(_pick(lows, i) or close, open_, close)
            timestamp = int(ts) * 1000
            if candles and timestamp <= candles[-1].timestamp:
                continue
            candles.append(Candle(
                timestamp=timestamp,
                open=open_,
                high=high,
                low=low,
                close=close,
                volume=_pick(volumes, i) or 0.0,
            ))
        return candles
