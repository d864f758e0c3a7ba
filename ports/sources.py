"""
External collaborator ports and error types.

This module defines the protocols the pipeline talks to (candle and news
providers, the reasoning model, the live channel and the entitlement
gate) and the context-rich error types adapters raise.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, AsyncIterator, NamedTuple, Protocol, runtime_checkable

from domain import Headline, MarketData


# ============================================================================
# Error Codes
# ============================================================================

class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # Network errors (1xx)
    NETWORK_TIMEOUT = "E101"
    NETWORK_CONNECTION = "E102"
    NETWORK_DNS = "E103"
    NETWORK_SSL = "E104"

    # HTTP errors (2xx)
    HTTP_CLIENT_ERROR = "E201"
    HTTP_SERVER_ERROR = "E202"
    HTTP_RATE_LIMITED = "E203"
    HTTP_UNAUTHORIZED = "E204"
    HTTP_FORBIDDEN = "E205"
    HTTP_NOT_FOUND = "E206"

    # Parse errors (3xx)
    PARSE_JSON = "E301"
    PARSE_DATE = "E304"

    # Data errors (4xx)
    DATA_MISSING = "E401"
    DATA_INVALID = "E402"
    DATA_EMPTY = "E404"

    # Validation errors (5xx)
    VALIDATION_PAIR = "E501"
    VALIDATION_PARAM = "E502"

    # Reasoning model errors (6xx)
    REASONING_EMPTY = "E601"
    REASONING_SCHEMA = "E602"
    REASONING_API = "E603"

    UNKNOWN = "E999"


# ============================================================================
# Error Classes
# ============================================================================

class AdapterError(Exception):
    """
    Base exception for adapter failures.

    Provides structured error information for debugging and monitoring.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        source: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.source = source
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now()

        parts = [f"[{code.value}]"]
        if source:
            parts.append(f"[{source}]")
        parts.append(message)

        self.message = message
        super().__init__(" ".join(parts))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "source": self.source,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


class RateLimitError(AdapterError):
    """Raised when rate limit is exceeded."""

    def __init__(
        self,
        retry_after: timedelta | None = None,
        source: str | None = None,
        limit: int | None = None,
    ):
        self.retry_after = retry_after
        self.limit = limit

        msg = "Rate limit exceeded"
        if retry_after:
            msg += f", retry after {retry_after.total_seconds():.0f}s"

        context = {}
        if retry_after:
            context["retry_after_seconds"] = retry_after.total_seconds()
        if limit:
            context["limit"] = limit

        super().__init__(
            message=msg,
            code=ErrorCode.HTTP_RATE_LIMITED,
            source=source,
            context=context,
        )


class FetchError(AdapterError):
    """Raised when data fetch fails."""

    def __init__(
        self,
        source: str,
        reason: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
    ):
        self.reason = reason
        self.url = url
        self.status_code = status_code

        context = {"reason": reason}
        if url:
            context["url"] = url
        if status_code:
            context["status_code"] = status_code

        super().__init__(
            message=reason,
            code=code,
            source=source,
            context=context,
            cause=cause,
        )

    @classmethod
    def from_http_error(
        cls,
        source: str,
        status_code: int,
        url: str | None = None,
        response_body: str | None = None,
    ) -> "FetchError":
        """Create FetchError from HTTP error response.

        Raises:
            RateLimitError: For HTTP 429
        """
        if status_code == 429:
            raise RateLimitError(source=source)

        if 400 <= status_code < 500:
            code = ErrorCode.HTTP_CLIENT_ERROR
            if status_code == 401:
                code = ErrorCode.HTTP_UNAUTHORIZED
            elif status_code == 403:
                code = ErrorCode.HTTP_FORBIDDEN
            elif status_code == 404:
                code = ErrorCode.HTTP_NOT_FOUND
        else:
            code = ErrorCode.HTTP_SERVER_ERROR

        reason = f"HTTP {status_code}"
        if response_body:
            reason += f": {response_body[:100]}"

        return cls(
            source=source,
            reason=reason,
            code=code,
            url=url,
            status_code=status_code,
        )

    @classmethod
    def from_network_error(
        cls,
        source: str,
        error: Exception,
        url: str | None = None,
    ) -> "FetchError":
        """Create FetchError from network exception."""
        error_str = str(error).lower()

        if "timeout" in error_str or "timed out" in error_str:
            code = ErrorCode.NETWORK_TIMEOUT
            reason = "Request timed out"
        elif "ssl" in error_str or "certificate" in error_str:
            code = ErrorCode.NETWORK_SSL
            reason = "SSL/TLS error"
        elif "dns" in error_str or "name resolution" in error_str:
            code = ErrorCode.NETWORK_DNS
            reason = "DNS resolution failed"
        else:
            code = ErrorCode.NETWORK_CONNECTION
            reason = f"Connection error: {error}"

        return cls(
            source=source,
            reason=reason,
            code=code,
            url=url,
            cause=error,
        )


class ParseError(AdapterError):
    """Raised when response parsing fails."""

    def __init__(
        self,
        source: str,
        format_type: str,
        reason: str,
        raw_content: str | None = None,
        cause: Exception | None = None,
    ):
        code_map = {
            "json": ErrorCode.PARSE_JSON,
            "date": ErrorCode.PARSE_DATE,
        }
        code = code_map.get(format_type, ErrorCode.UNKNOWN)

        context = {"format": format_type}
        if raw_content:
            context["raw_preview"] = raw_content[:200]

        super().__init__(
            message=f"Failed to parse {format_type}: {reason}",
            code=code,
            source=source,
            context=context,
            cause=cause,
        )


class DataError(AdapterError):
    """Raised when data is missing or invalid."""

    def __init__(
        self,
        source: str,
        reason: str,
        code: ErrorCode = ErrorCode.DATA_INVALID,
        field: str | None = None,
        expected: Any = None,
        actual: Any = None,
    ):
        context = {"reason": reason}
        if field:
            context["field"] = field
        if expected is not None:
            context["expected"] = str(expected)
        if actual is not None:
            context["actual"] = str(actual)

        super().__init__(
            message=reason,
            code=code,
            source=source,
            context=context,
        )

    @classmethod
    def missing(cls, source: str, field: str) -> "DataError":
        """Create error for missing required field."""
        return cls(
            source=source,
            reason=f"Missing required field: {field}",
            code=ErrorCode.DATA_MISSING,
            field=field,
        )

    @classmethod
    def empty(cls, source: str, description: str = "No data") -> "DataError":
        """Create error for empty result set."""
        return cls(
            source=source,
            reason=description,
            code=ErrorCode.DATA_EMPTY,
        )


class ValidationError(AdapterError):
    """Raised when input validation fails."""

    def __init__(
        self,
        reason: str,
        field: str,
        value: Any = None,
        source: str | None = None,
    ):
        context = {"field": field}
        if value is not None:
            context["value"] = str(value)[:50]

        super().__init__(
            message=reason,
            code=ErrorCode.VALIDATION_PARAM,
            source=source,
            context=context,
        )

    @classmethod
    def invalid_pair(cls, pair: str, reason: str = "Unsupported pair") -> "ValidationError":
        """Create error for an unknown trading pair."""
        error = cls(
            reason=f"Invalid pair '{pair}': {reason}",
            field="pair",
            value=pair,
        )
        error.code = ErrorCode.VALIDATION_PAIR
        return error


class ReasoningError(AdapterError):
    """Raised when one reasoning-model attempt fails."""

    def __init__(
        self,
        model: str,
        reason: str,
        code: ErrorCode = ErrorCode.REASONING_API,
        cause: Exception | None = None,
    ):
        self.model = model
        super().__init__(
            message=reason,
            code=code,
            source=model,
            context={"model": model},
            cause=cause,
        )

    @classmethod
    def empty_response(cls, model: str) -> "ReasoningError":
        return cls(model, "No JSON content in model response", ErrorCode.REASONING_EMPTY)


class DecisionSchemaError(ReasoningError):
    """Raised when a streamed decision does not match the decision schema."""

    def __init__(
        self,
        model: str,
        reason: str,
        raw_content: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(model, reason, ErrorCode.REASONING_SCHEMA, cause)
        if raw_content:
            self.context["raw_preview"] = raw_content[:200]


# ============================================================================
# Ports
# ============================================================================

@runtime_checkable
class CandleProvider(Protocol):
    """
    Source of candle windows.

    Implementations never raise for provider failures: they degrade to a
    synthetic series around the current price and flag it.
    """

    def fetch_candles(self, pair: str, timeframe: str) -> MarketData:
        ...


@runtime_checkable
class NewsProvider(Protocol):
    """Source of recent headlines; an empty list is a valid answer."""

    def fetch_headlines(self, pair: str, limit: int = 50) -> list[Headline]:
        ...


class ReasoningChunk(NamedTuple):
    """One streamed piece of a model response."""
    is_thought: bool
    text: str


@runtime_checkable
class ReasoningModel(Protocol):
    """Streaming structured-output model."""

    def stream(
        self,
        model: str,
        system_prompt: str,
        prompt: str,
        schema: dict[str, Any],
    ) -> AsyncIterator[ReasoningChunk]:
        """
        Stream thought and content chunks for one request.

        Raises:
            ReasoningError: If the request fails
        """
        ...


@runtime_checkable
class LiveChannel(Protocol):
    """Push channel to the single subscriber of a session."""

    @property
    def is_open(self) -> bool:
        ...

    async def send(self, payload: dict[str, Any]) -> None:
        """Send one JSON message; dropped silently once the channel is closed."""
        ...


@runtime_checkable
class EntitlementGate(Protocol):
    """Per-user allowance of actionable predictions."""

    async def has_allowance(self, user_id: str) -> bool:
        ...

    async def consume(self, user_id: str) -> bool:
        """Use one unit; False when the allowance is exhausted."""
        ...

    async def balance(self, user_id: str) -> int | None:
        """Remaining units, None for unlimited users."""
        ...
