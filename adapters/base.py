"""
Base adapter with caching, rate limiting, and structured logging.

All HTTP adapters inherit from BaseAdapter to get:
- Response caching with a TTL per data category
- Rate limiting per source
- Structured logging at boundaries
- Common HTTP request handling
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, TypeVar
import json
import time
import logging
import urllib.request
import urllib.error

from ports import RateLimitError, FetchError, ParseError, ValidationError
from config import get_config

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheEntry:
    """Single cache entry with TTL tracking."""

    __slots__ = ("data", "created_at", "ttl")

    def __init__(self, data: Any, ttl: timedelta):
        self.data = data
        self.created_at = datetime.now()
        self.ttl = ttl

    def is_valid(self) -> bool:
        return datetime.now() - self.created_at < self.ttl


class RateLimiter:
    """Sliding window rate limiter."""

    __slots__ = ("max_requests", "window_seconds", "requests")

    def __init__(self, max_requests: int, window_seconds: float = 60.0):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: list[float] = []

    def acquire(self, source: str | None = None) -> None:
        """
        Acquire a request slot.

        Raises:
            RateLimitError: If rate limit exceeded
        """
        now = time.monotonic()

        cutoff = now - self.window_seconds
        self.requests = [t for t in self.requests if t > cutoff]

        if len(self.requests) >= self.max_requests:
            oldest = min(self.requests)
            retry_after = timedelta(seconds=oldest + self.window_seconds - now)
            raise RateLimitError(retry_after=retry_after, source=source, limit=self.max_requests)

        self.requests.append(now)


class BaseAdapter(ABC):
    """
    Base class for HTTP market data adapters.

    Provides:
    - Response caching keyed by call parameters
    - Rate limiting on cache misses
    - urllib GET helpers with error mapping
    """

    def __init__(self):
        config = get_config()
        self._config = config
        self._cache: dict[str, CacheEntry] = {}
        self._rate_limiter = RateLimiter(
            max_requests=config.rate_limits.get(self.source_name, 60)
        )

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Unique identifier for this data source."""
        ...

    def _cache_key(self, **kwargs) -> str:
        """Generate cache key from call parameters."""
        parts = [self.source_name]
        for k, v in sorted(kwargs.items()):
            parts.append(f"{k}={v}")
        return ":".join(parts)

    def _get_cached(self, key: str) -> Any | None:
        entry = self._cache.get(key)
        if entry and entry.is_valid():
            logger.debug(f"Cache hit: {key}")
            return entry.data
        return None

    def _set_cached(self, key: str, data: Any, category: str) -> None:
        ttl = self._config.cache_ttl.get_timedelta(category)
        self._cache[key] = CacheEntry(data, ttl)
        logger.debug(f"Cached: {key} (TTL={ttl})")

    def clear_cache(self) -> None:
        self._cache.clear()

    def _cached(self, category: str, loader: Callable[[], T], **kwargs) -> T:
        """
        Return a cached value or load, rate limit and cache it.

        Raises:
            RateLimitError: If rate limit exceeded
            FetchError / ParseError: Propagated from the loader
        """
        key = self._cache_key(category=category, **kwargs)
        cached = self._get_cached(key)
        if cached is not None:
            return cached

        self._rate_limiter.acquire(self.source_name)
        data = loader()
        self._set_cached(key, data, category)
        return data

    # ========================================================================
    # HTTP Helpers
    # ========================================================================

    def _default_headers(self) -> dict[str, str]:
        """Headers sent with every request. Override to add auth."""
        return {"User-Agent": self._config.http.user_agent}

    def _http_get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> bytes:
        """
        Make HTTP GET request with standardized error handling.

        Args:
            url: URL to fetch
            headers: Additional headers (User-Agent added automatically)
            timeout: Request timeout (defaults to config value)

        Returns:
            Response body as bytes

        Raises:
            RateLimitError: On 429 response
            FetchError: On other HTTP or network errors
        """
        timeout = timeout or self._config.http.timeout_seconds

        req_headers = self._default_headers()
        if headers:
            req_headers.update(headers)

        req = urllib.request.Request(url, headers=req_headers)

        logger.debug(
            f"HTTP GET {url}",
            extra={"source": self.source_name, "url": url},
        )
        start_time = time.monotonic()

        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                data = resp.read()
                elapsed = time.monotonic() - start_time

                logger.debug(
                    f"HTTP 200 OK ({len(data)} bytes, {elapsed:.2f}s)",
                    extra={
                        "source": self.source_name,
                        "url": url,
                        "status": 200,
                        "size": len(data),
                        "elapsed_ms": int(elapsed * 1000),
                    },
                )
                return data

        except urllib.error.HTTPError as e:
            elapsed = time.monotonic() - start_time
            logger.warning(
                f"HTTP {e.code} from {url} ({elapsed:.2f}s)",
                extra={
                    "source": self.source_name,
                    "url": url,
                    "status": e.code,
                    "elapsed_ms": int(elapsed * 1000),
                },
            )
            raise FetchError.from_http_error(
                source=self.source_name,
                status_code=e.code,
                url=url,
                response_body=str(e.reason),
            ) from e

        except (urllib.error.URLError, TimeoutError) as e:
            elapsed = time.monotonic() - start_time
            reason = getattr(e, "reason", e)
            logger.warning(
                f"Network error for {url}: {reason} ({elapsed:.2f}s)",
                extra={
                    "source": self.source_name,
                    "url": url,
                    "error": str(reason),
                    "elapsed_ms": int(elapsed * 1000),
                },
            )
            raise FetchError.from_network_error(
                source=self.source_name,
                error=e,
                url=url,
            ) from e

    def _http_get_json(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Make HTTP GET request and parse JSON response.

        Raises:
            FetchError: On HTTP or network errors
            ParseError: On JSON parse errors
        """
        data = self._http_get(url, headers)

        try:
            return json.loads(data.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(
                f"JSON parse error for {url}: {e}",
                extra={
                    "source": self.source_name,
                    "url": url,
                    "error": str(e),
                },
            )
            raise ParseError(
                source=self.source_name,
                format_type="json",
                reason=str(e),
                raw_content=data.decode("utf-8", errors="replace")[:500],
                cause=e,
            ) from e

    # ========================================================================
    # Input Validation Helpers
    # ========================================================================

    def _split_pair(self, pair: str) -> tuple[str, str]:
        """
        Validate a BASE/QUOTE pair and return its two symbols.

        Raises:
            ValidationError: If the pair is malformed
        """
        if not pair:
            raise ValidationError.invalid_pair(pair, "Pair cannot be empty")

        base, sep, quote = pair.upper().strip().partition("/")
        if not sep or not base.isalnum() or not quote.isalnum():
            raise ValidationError.invalid_pair(pair, "Must look like BASE/QUOTE")
        return base, quote
