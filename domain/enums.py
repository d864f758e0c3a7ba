from enum import Enum


class Direction(str, Enum):
    """Directional opinion of a signal, decision or verdict."""
    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"

    @property
    def is_actionable(self) -> bool:
        return self is not Direction.NEUTRAL


class TrendBias(str, Enum):
    """Coarse trend reading of one timeframe."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


class MarketRegime(str, Enum):
    """Trend-strength classification derived from ADX."""
    STRONG_TRENDING = "STRONG_TRENDING"
    TRENDING = "TRENDING"
    RANGING = "RANGING"


class Sentiment(str, Enum):
    """Keyword sentiment of a headline."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class StageName(str, Enum):
    """Named steps of the progressive pipeline, in execution order."""
    DATA_COLLECTION = "data_collection"
    PROTOCOL_EXECUTION = "protocol_execution"
    TECHNICAL_CALCULATION = "technical_calculation"
    HEDGE_FUND_AUDIT = "hedge_fund_audit"
    SENTIMENT_ANALYSIS = "sentiment_analysis"
    SIGNAL_AGGREGATION = "signal_aggregation"
    AI_THINKING = "ai_thinking"
    FINAL_VERDICT = "final_verdict"


class StageStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class AuditStatus(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    WARN = "WARN"
