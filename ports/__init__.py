from .sources import (
    AdapterError,
    CandleProvider,
    DataError,
    DecisionSchemaError,
    EntitlementGate,
    ErrorCode,
    FetchError,
    LiveChannel,
    NewsProvider,
    ParseError,
    RateLimitError,
    ReasoningChunk,
    ReasoningError,
    ReasoningModel,
    ValidationError,
)

__all__ = [
    # Ports
    "CandleProvider",
    "NewsProvider",
    "ReasoningChunk",
    "ReasoningModel",
    "LiveChannel",
    "EntitlementGate",
    # Errors
    "AdapterError",
    "RateLimitError",
    "FetchError",
    "ParseError",
    "DataError",
    "ValidationError",
    "ReasoningError",
    "DecisionSchemaError",
    "ErrorCode",
]
