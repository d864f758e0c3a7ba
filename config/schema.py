"""
Configuration schema with validation.

All configuration is validated at load time using Pydantic.
"""

from datetime import timedelta

from pydantic import BaseModel, Field, field_validator


class ApiKeysConfig(BaseModel):
    """API key configuration (loaded from environment)."""

    # Optional keys - public endpoints work without them
    anthropic: str | None = Field(default=None, description="Anthropic API key")
    cryptocompare: str | None = Field(default=None, description="CryptoCompare API key")


class CacheTtlConfig(BaseModel):
    """Cache TTL configuration by data category."""

    price_seconds: int = Field(default=15, ge=0, le=600)
    candles_seconds: int = Field(default=30, ge=0, le=3600)
    news_minutes: int = Field(default=10, ge=0, le=240)

    def get_timedelta(self, category: str) -> timedelta:
        """Get timedelta for a category."""
        mapping = {
            "price": timedelta(seconds=self.price_seconds),
            "candles": timedelta(seconds=self.candles_seconds),
            "news": timedelta(minutes=self.news_minutes),
        }
        return mapping.get(category, timedelta(minutes=1))


class RateLimitsConfig(BaseModel):
    """Rate limits per source (requests per minute)."""

    cryptocompare: int = Field(default=120, ge=1, le=600)
    yahoo: int = Field(default=60, ge=1, le=200)

    def get(self, source: str, default: int = 60) -> int:
        return getattr(self, source, default)


class HttpConfig(BaseModel):
    """HTTP client configuration."""

    timeout_seconds: float = Field(default=10.0, ge=1.0, le=60.0)
    user_agent: str = Field(default="CryptomindBot/1.0", min_length=1)
    max_retries: int = Field(default=3, ge=0, le=10)
    retry_delay_seconds: float = Field(default=1.0, ge=0.1, le=10.0)


class MarketDataConfig(BaseModel):
    """Candle provider settings."""

    candle_window: int = Field(default=300, ge=50, le=2000)
    cryptocompare_base_url: str = Field(default="https://min-api.cryptocompare.com/data")
    yahoo_base_url: str = Field(default="https://query1.finance.yahoo.com")

    # Display pair -> provider pair
    pair_aliases: dict[str, str] = Field(default_factory=lambda: {
        "XAU/USD": "PAXG/USDT",
    })

    # Pairs served from the Yahoo chart endpoint instead of CryptoCompare
    yahoo_symbols: dict[str, str] = Field(default_factory=lambda: {
        "US100/USD": "NQ=F",
    })

    # Price used to seed synthetic candles when no live price is available
    default_prices: dict[str, float] = Field(default_factory=lambda: {
        "XAU": 4514.50,
        "US100": 25938.25,
        "BTC": 100000.0,
    })
    fallback_price: float = Field(default=100.0, gt=0)


class ReasoningConfig(BaseModel):
    """Reasoning model settings."""

    models: list[str] = Field(default_factory=lambda: [
        "claude-sonnet-4-5-20250929",
        "claude-sonnet-4-20250514",
        "claude-3-7-sonnet-20250219",
    ])
    thinking_budget: int = Field(default=8192, ge=1024, le=64000)
    max_tokens: int = Field(default=16000, ge=2048, le=128000)
    request_timeout_seconds: float = Field(default=120.0, ge=5.0, le=600.0)

    @field_validator("models")
    @classmethod
    def at_least_one_model(cls, v: list[str]) -> list[str]:
        models = [m.strip() for m in v if m and m.strip()]
        if not models:
            raise ValueError("At least one reasoning model is required")
        return models

    @field_validator("max_tokens")
    @classmethod
    def max_tokens_exceeds_budget(cls, v: int, info) -> int:
        budget = info.data.get("thinking_budget", 8192)
        if v <= budget:
            raise ValueError("max_tokens must be greater than thinking_budget")
        return v


class PipelineConfig(BaseModel):
    """Progressive pipeline execution configuration."""

    # Multiplier on narration delays; 0 disables pacing
    pace_scale: float = Field(default=1.0, ge=0.0, le=10.0)
    ack_timeout_seconds: float = Field(default=120.0, ge=1.0, le=900.0)
    playback_delay_seconds: float = Field(default=3.0, ge=0.0, le=60.0)
    news_limit: int = Field(default=50, ge=1, le=200)
    news_context_size: int = Field(default=15, ge=0, le=50)
    history_size: int = Field(default=5, ge=1, le=100)


class EntitlementsConfig(BaseModel):
    """In-memory allowance settings."""

    default_allowance: int = Field(default=3, ge=0, le=10000)
    unlimited_users: list[str] = Field(default_factory=list)


class ServerConfig(BaseModel):
    """WebSocket server settings."""

    host: str = Field(default="127.0.0.1", min_length=1)
    port: int = Field(default=8765, ge=1, le=65535)
    default_timeframe: str = Field(default="M1")
    default_user: str = Field(default="dev_user")


class CryptomindConfig(BaseModel):
    """
    Root configuration model.

    All settings are validated on load.
    """

    # Pairs offered to clients
    pairs: list[str] = Field(default_factory=lambda: [
        "BTC/USDT", "ETH/USDT", "SOL/USDT", "XRP/USDT",
        "XAU/USD", "US100/USD",
    ])

    # Subsections
    api_keys: ApiKeysConfig = Field(default_factory=ApiKeysConfig)
    cache_ttl: CacheTtlConfig = Field(default_factory=CacheTtlConfig)
    rate_limits: RateLimitsConfig = Field(default_factory=RateLimitsConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    reasoning: ReasoningConfig = Field(default_factory=ReasoningConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    entitlements: EntitlementsConfig = Field(default_factory=EntitlementsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @field_validator("pairs")
    @classmethod
    def validate_pairs(cls, v: list[str]) -> list[str]:
        """Validate BASE/QUOTE format."""
        validated = []
        for pair in v:
            pair = pair.upper().strip()
            base, sep, quote = pair.partition("/")
            if not sep or not base or not quote:
                raise ValueError(f"Invalid pair format: {pair}")
            validated.append(pair)
        return validated
