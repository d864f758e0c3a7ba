"""
CryptoCompare adapter.

Primary candle and news source:
- Spot price (/price)
- 24h change (/generateAvg on the CCCAGG index)
- OHLCV history (/v2/histominute, /v2/histohour, /v2/histoday)
- Coin news (/v2/news/)

Candle requests never raise for provider failures. Missing prices fall
back to configured defaults and missing or short history is filled with
synthetic candles, with MarketData.synthetic set.
"""

import logging
import urllib.parse
from datetime import datetime
from typing import Any

from domain import Candle, Headline, MarketData, Sentiment, validate_series
from ports import AdapterError, DataError

from .base import BaseAdapter
from .synthetic import pad_to_window, synthesize_candles, volume_change

logger = logging.getLogger(__name__)

# Timeframe -> (history endpoint, aggregate)
HISTO_ENDPOINTS = {
    "M1": ("histominute", 1),
    "M3": ("histominute", 3),
    "M5": ("histominute", 5),
    "M15": ("histominute", 15),
    "M30": ("histominute", 30),
    "M45": ("histominute", 45),
    "H1": ("histohour", 1),
    "H2": ("histohour", 2),
    "H3": ("histohour", 3),
    "H4": ("histohour", 4),
    "D1": ("histoday", 1),
    "W1": ("histoday", 7),
}

POSITIVE_KEYWORDS = ("surge", "bull", "high", "gain")
NEGATIVE_KEYWORDS = ("crash", "bear", "drop", "loss")


def classify_headline(title: str) -> Sentiment:
    """Keyword sentiment; positive keywords win over negative ones."""
    lowered = title.lower()
    if any(word in lowered for word in POSITIVE_KEYWORDS):
        return Sentiment.POSITIVE
    if any(word in lowered for word in NEGATIVE_KEYWORDS):
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


class CryptoCompareAdapter(BaseAdapter):
    """
    CryptoCompare candle and news provider.

    Pairs listed in `market_data.yahoo_symbols` are first offered to
    `index_provider` (a YahooChartAdapter) and fall back here on failure.
    """

    def __init__(self, index_provider: Any | None = None):
        super().__init__()
        self._market = self._config.market_data
        self._base_url = self._market.cryptocompare_base_url.rstrip("/")
        self._index_provider = index_provider

    @property
    def source_name(self) -> str:
        return "cryptocompare"

    def _default_headers(self) -> dict[str, str]:
        headers = super()._default_headers()
        headers["Accept"] = "application/json"
        if key := self._config.api_keys.cryptocompare:
            headers["Authorization"] = f"Apikey {key}"
        return headers

    def _symbols(self, pair: str) -> tuple[str, str]:
        alias = self._market.pair_aliases.get(pair.upper(), pair)
        return self._split_pair(alias)

    def _url(self, path: str, **params: Any) -> str:
        return f"{self._base_url}/{path}?{urllib.parse.urlencode(params)}"

    # ========================================================================
    # Candles
    # ========================================================================

    def fetch_candles(self, pair: str, timeframe: str) -> MarketData:
        """
        Fetch the candle window for a pair.

        Raises:
            ValidationError: If the pair is malformed (no fallback applies)
        """
        pair = pair.upper()
        fsym, tsym = self._symbols(pair)

        if self._index_provider is not None and pair in self._market.yahoo_symbols:
            try:
                return self._index_provider.fetch_candles(pair, timeframe)
            except AdapterError as e:
                logger.warning(f"Index provider failed for {pair}, using CryptoCompare: {e}")

        price = self._fetch_price(pair, fsym, tsym)
        change_24h = self._fetch_change_24h(fsym, tsym, price)
        window = self._market.candle_window

        try:
            history = self._fetch_history(fsym, tsym, timeframe)
        except AdapterError as e:
            logger.warning(
                f"History unavailable for {pair} {timeframe}, synthesizing: {e}",
                extra={"error": e.to_dict()},
            )
            return MarketData(
                pair=pair,
                timeframe=timeframe,
                current_price=price,
                candles=synthesize_candles(pair, timeframe, price, window),
                price_change_24h=change_24h,
                volume_change_24h=0.0,
                synthetic=True,
            )

        candles, padded = pad_to_window(pair, timeframe, history, price, window)
        if padded:
            logger.info(f"Padded {pair} {timeframe} with {window - len(history)} synthetic candles")

        logger.info(f"Fetched {pair} {timeframe}: ${price:.2f}, 24h: {change_24h:.2f}%")
        return MarketData(
            pair=pair,
            timeframe=timeframe,
            current_price=price,
            candles=candles,
            price_change_24h=change_24h,
            volume_change_24h=volume_change(candles),
            synthetic=padded,
        )

    def _fallback_price(self, pair: str) -> float:
        for symbol, price in self._market.default_prices.items():
            if symbol in pair:
                return price
        return self._market.fallback_price

    def _fetch_price(self, pair: str, fsym: str, tsym: str) -> float:
        url = self._url("price", fsym=fsym, tsyms=tsym)
        try:
            data = self._cached("price", lambda: self._http_get_json(url), fsym=fsym, tsym=tsym)
            price = float(data.get(tsym) or 0)
        except (AdapterError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Price fetch failed for {pair}: {e}")
            price = 0.0

        if price <= 0:
            price = self._fallback_price(pair)
            logger.info(f"Using synthetic price for {pair}: {price}")
        return price

    def _fetch_change_24h(self, fsym: str, tsym: str, price: float) -> float:
        url = self._url("generateAvg", fsym=fsym, tsym=tsym, e="CCCAGG")
        try:
            data = self._cached("price", lambda: self._http_get_json(url), avg=f"{fsym}/{tsym}")
            change = float(data["RAW"]["CHANGE24HOUR"])
        except (AdapterError, KeyError, TypeError, ValueError) as e:
            logger.debug(f"24h stats unavailable for {fsym}/{tsym}: {e}")
            return 0.0
        return change / price * 100 if price else 0.0

    def _fetch_history(self, fsym: str, tsym: str, timeframe: str) -> list[Candle]:
        """
        Raises:
            FetchError / ParseError: On transport failures
            DataError: If the provider reports an error
        """
        endpoint, aggregate = HISTO_ENDPOINTS.get(timeframe, ("histominute", 1))
        url = self._url(
            f"v2/{endpoint}",
            fsym=fsym,
            tsym=tsym,
            limit=self._market.candle_window,
            aggregate=aggregate,
        )
        data = self._cached("candles", lambda: self._http_get_json(url), url=url)

        if not isinstance(data, dict) or data.get("Response") == "Error":
            message = data.get("Message") if isinstance(data, dict) else "unexpected payload"
            raise DataError(self.source_name, f"History error: {message}")

        inner = data.get("Data") or {}
        if not isinstance(inner, dict):
            raise DataError(
                self.source_name, "History payload has unexpected shape",
                field="Data", expected="dict", actual=type(inner).__name__,
            )
        points = inner.get("Data") or []
        if not isinstance(points, list):
            raise DataError(
                self.source_name, "History payload has unexpected shape",
                field="Data.Data", expected="list", actual=type(points).__name__,
            )

        candles = []
        for point in points:
            try:
                candle = Candle(
                    timestamp=int(point["time"]) * 1000,
                    open=float(point["open"]),
                    high=float(point["high"]),
                    low=float(point["low"]),
                    close=float(point["close"]),
                    volume=float(point.get("volumeto") or 0),
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed history point: {e}")
                continue
            if candles and candle.timestamp <= candles[-1].timestamp:
                continue
            candles.append(candle)

        validate_series(candles)
        return candles

    # ========================================================================
    # News
    # ========================================================================

    def fetch_headlines(self, pair: str, limit: int = 50) -> list[Headline]:
        """Recent coin headlines; any provider failure yields an empty list."""
        fsym, _ = self._symbols(pair)
        url = self._url("v2/news/", lang="EN", categories=fsym, limit=limit)

        try:
            data = self._cached("news", lambda: self._http_get_json(url), categories=fsym, limit=limit)
            return self._parse_headlines(data, limit)
        except AdapterError as e:
            logger.warning(f"News fetch failed for {fsym}: {e}", extra={"error": e.to_dict()})
            return []

    def _parse_headlines(self, data: Any, limit: int) -> list[Headline]:
        """
        Raises:
            DataError: If the payload is not a news list
        """
        if not isinstance(data, dict):
            raise DataError(self.source_name, "News payload is not an object", actual=type(data).__name__)

        message = data.get("Message")
        if message and message != "News list successfully returned":
            logger.warning(f"News API message: {message}")

        items = data.get("Data")
        if items is None:
            return []
        if not isinstance(items, list):
            raise DataError(
                self.source_name,
                "News payload has unexpected shape",
                field="Data",
                expected="list",
                actual=type(items).__name__,
            )

        headlines = []
        for item in items[:limit]:
            if not isinstance(item, dict) or not item.get("title"):
                continue
            title = str(item["title"])
            source_info = item.get("source_info")
            published = item.get("published_on")
            try:
                published_at = datetime.fromtimestamp(published).strftime("%H:%M") if published else ""
            except (TypeError, ValueError, OverflowError, OSError) as e:
                logger.debug(f"Bad publish time on news item: {e}")
                published_at = ""
            headlines.append(Headline(
                title=title,
                source=(source_info.get("name") if isinstance(source_info, dict) else None) or "CryptoNews",
                sentiment=classify_headline(title),
                published_at=published_at,
                url=item.get("url"),
            ))
        return headlines
