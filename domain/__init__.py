from .enums import (
    AuditStatus,
    Direction,
    MarketRegime,
    Sentiment,
    StageName,
    StageStatus,
    TrendBias,
)
from .primitives import Candle, Headline, MarketData, validate_series
from .technical import TechnicalIndicatorSet, analyze_market, classify_regime
from .signals import WeightedSignal, analyze_volume, collect_signals
from .aggregation import (
    LIVE_CONFIDENCE_BAND,
    TECHNICAL_CONFIDENCE_BAND,
    AggregationResult,
    ConfidenceBand,
    combine_weighted_signals,
    determine_duration,
)
from .audit import AuditCheck, SafetyAudit, run_safety_audit
from .decision import (
    DECISION_SCHEMA,
    PriceRange,
    ReasoningDecision,
    ReasoningSnapshot,
    TradeTargets,
)
from .stages import (
    AckAlreadyResolvedError,
    AckSignal,
    AnalysisStage,
    StageOrderError,
    StageTrail,
    Verdict,
)

__all__ = [
    # Enums
    "AuditStatus",
    "Direction",
    "MarketRegime",
    "Sentiment",
    "StageName",
    "StageStatus",
    "TrendBias",
    # Primitives
    "Candle",
    "Headline",
    "MarketData",
    "validate_series",
    # Indicator snapshot
    "TechnicalIndicatorSet",
    "analyze_market",
    "classify_regime",
    # Signals and aggregation
    "WeightedSignal",
    "analyze_volume",
    "collect_signals",
    "AggregationResult",
    "ConfidenceBand",
    "LIVE_CONFIDENCE_BAND",
    "TECHNICAL_CONFIDENCE_BAND",
    "combine_weighted_signals",
    "determine_duration",
    # Audit
    "AuditCheck",
    "SafetyAudit",
    "run_safety_audit",
    # Reasoning decision
    "DECISION_SCHEMA",
    "PriceRange",
    "ReasoningDecision",
    "ReasoningSnapshot",
    "TradeTargets",
    # Pipeline records
    "AckAlreadyResolvedError",
    "AckSignal",
    "AnalysisStage",
    "StageOrderError",
    "StageTrail",
    "Verdict",
]
