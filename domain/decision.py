"""
Reasoning-model decision types.

ReasoningSnapshot is everything the model sees; ReasoningDecision is the
validated structured answer. Decisions arrive as camelCase JSON and are
validated with pydantic; confidence is clamped into [80, 99] after
validation rather than rejected.
"""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from .enums import Direction, MarketRegime, TrendBias


DECISION_CONFIDENCE_MIN = 80
DECISION_CONFIDENCE_MAX = 99


# ============================================================================
# Decision
# ============================================================================

class PriceRange(BaseModel):
    model_config = {"frozen": True, "extra": "ignore"}

    low: float
    high: float


class TradeTargets(BaseModel):
    """Entry band, target band and stop price for an actionable verdict."""
    model_config = {"frozen": True, "extra": "ignore"}

    entry: PriceRange
    target: PriceRange
    stop: float

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump()


class ReasoningDecision(BaseModel):
    """
    Structured decision returned by the reasoning model.

    Field names accept the camelCase keys of the wire schema.
    `thinking_process` is only ever set by the orchestrator.
    """
    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    direction: Direction
    confidence: int = Field(description="Clamped into [80, 99]")
    rationale: str = Field(min_length=1)
    risk_factors: list[str] = Field(alias="riskFactors", min_length=2, max_length=4)
    key_factors: list[str] = Field(alias="keyFactors", min_length=3, max_length=6)
    trade_targets: TradeTargets = Field(alias="tradeTargets")
    duration: str = Field(min_length=1)
    thinking_process: str | None = Field(default=None, alias="thinkingProcess")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> int:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f"confidence must be a number, got {v!r}")
        clamped = max(DECISION_CONFIDENCE_MIN, min(DECISION_CONFIDENCE_MAX, float(v)))
        return int(clamped + 0.5)

    @model_validator(mode="before")
    @classmethod
    def _drop_model_thinking(cls, data: Any) -> Any:
        # The model never gets to supply its own thinking trace
        if isinstance(data, dict):
            data = {k: v for k, v in data.items() if k not in ("thinkingProcess", "thinking_process")}
        return data

    def with_thinking(self, thinking: str | None) -> "ReasoningDecision":
        return self.model_copy(update={"thinking_process": thinking or None})


DECISION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "direction": {"type": "string", "enum": ["UP", "DOWN", "NEUTRAL"]},
        "confidence": {"type": "number", "minimum": 80, "maximum": 99},
        "rationale": {"type": "string"},
        "riskFactors": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 2,
            "maxItems": 4,
        },
        "keyFactors": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": 3,
            "maxItems": 6,
        },
        "tradeTargets": {
            "type": "object",
            "properties": {
                "entry": {
                    "type": "object",
                    "properties": {"low": {"type": "number"}, "high": {"type": "number"}},
                    "required": ["low", "high"],
                },
                "target": {
                    "type": "object",
                    "properties": {"low": {"type": "number"}, "high": {"type": "number"}},
                    "required": ["low", "high"],
                },
                "stop": {"type": "number"},
            },
            "required": ["entry", "target", "stop"],
        },
        "duration": {"type": "string"},
    },
    "required": [
        "direction", "confidence", "rationale", "riskFactors",
        "keyFactors", "tradeTargets", "duration",
    ],
}


# ============================================================================
# Snapshot
# ============================================================================

@dataclass(frozen=True)
class SignalSummary:
    category: str
    reason: str
    strength: float


@dataclass(frozen=True)
class AuditSummary:
    name: str
    status: str
    value: str
    message: str


@dataclass(frozen=True)
class ReasoningSnapshot:
    """Complete context sent to the reasoning model. Immutable once built."""
    pair: str
    current_price: float
    price_change_24h: float
    market_regime: MarketRegime
    entry_timeframe: str
    anchor_timeframe: str
    entry_trend_bias: TrendBias
    anchor_trend_bias: TrendBias
    up_signals: tuple[SignalSummary, ...]
    down_signals: tuple[SignalSummary, ...]
    up_score: float
    down_score: float
    volume_indicator: float
    volume_ma: float
    current_volume: float
    trend_strength: float
    volatility: float
    rsi: float
    macd_signal: str
    adx: float
    news_context: tuple[str, ...] = field(default_factory=tuple)
    safety_audit: tuple[AuditSummary, ...] = field(default_factory=tuple)

    @property
    def volume_ratio(self) -> float:
        return self.current_volume / self.volume_ma if self.volume_ma > 0 else 1.0
