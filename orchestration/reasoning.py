"""
Reasoning orchestrator.

Turns a ReasoningSnapshot into a validated ReasoningDecision by streaming
from a cascade of models. Thought chunks are scrubbed and forwarded to an
optional listener as they arrive; content chunks are buffered and parsed
once the stream ends. The first model to produce a schema-valid decision
wins; if every model fails the orchestrator returns None.
"""

import json
import logging
import re
from typing import Awaitable, Callable

from pydantic import ValidationError as PydanticValidationError

from config import get_config
from domain import DECISION_SCHEMA, ReasoningDecision, ReasoningSnapshot, TrendBias
from ports import DecisionSchemaError, ReasoningError, ReasoningModel

logger = logging.getLogger(__name__)

# (thought, full_thinking_so_far)
ThoughtListener = Callable[[str, str], Awaitable[None]]


# ============================================================================
# Prompts
# ============================================================================

SYSTEM_PROMPT = """You are an elite quantitative crypto trading strategist with deep expertise in technical analysis and multi-timeframe trend alignment.

Your task: analyze the technical indicators and market data provided and make a precise trading prediction.
- Begin your reasoning by stating "I am analyzing the [Entry Timeframe] chart...".
- Think carefully about each aspect before deciding.

REQUIREMENTS:
1. direction: "UP", "DOWN" or "NEUTRAL".
2. confidence: between 80 and 99. Use the full range:
   - 80-85: moderate setup with some conflicting signals or ranging conditions
   - 86-92: strong setup with good alignment
   - 93-99: exceptional setup with near-perfect alignment
   Be decisive. If you see an edge, do not default to NEUTRAL; use 80-88 for decent probable setups.
   Only answer NEUTRAL if the market is dead (ADX < 12) or the signals are truly chaotic.
3. rationale: 2-3 sentences on the factors driving the decision.
4. riskFactors: 2-4 specific risks to this trade.
5. keyFactors: 3-6 short items naming the indicators that support the decision.
6. tradeTargets: an actionable plan sized from the current price and ATR:
   - entry: a tight range around the current price (low/high)
   - target: a realistic range in the trade direction (low/high)
   - stop: the price that invalidates the setup

TRADE TARGET GUIDELINES:
- Keep entry close to the current price, a small band rather than a wide zone.
- Size distances with ATR: targets usually 1.5-2.5x ATR away, stops about 0.8-1.3x ATR away.
- For UP: stop < entry.low and target.high > entry.high.
- For DOWN: stop > entry.high and target.low < entry.low.

7. duration: estimated holding time derived from volatility and target distance, never generic:
   - scalps (M1-M5): "5-15 mins" or "10-30 mins"
   - day trades (M15-H1): "1-4 hours" or "Session End"
   - swings (H4-D1): "2-5 days" or "Weekly Hold"

TIMEFRAME FOCUS:
- You receive Entry Timeframe and Anchor Timeframe data. The user's Entry Timeframe decides; read the chart primarily on it.
- Use the Anchor Timeframe for context and confirmation only. A conflicting anchor must not override a clean entry setup.
- When trends conflict you may still trade a strong reversal or strong momentum, with reduced confidence.

VOLUME CONFIRMATION:
- Volume of at least 1.1x the 20-period volume MA is preferred.
- A new high or low on clearly falling volume is a weak breakout or breakdown; be cautious.

CONFIDENCE CALIBRATION:
- Mixed signals or RANGING regime: 80-85
- Strong directional bias with some counter-signals: 86-92
- Very strong alignment and favorable regime: 93-96
- Exceptional alignment, strong trend and volume confirmation: 97-99
- ADX < 12 is the only hard neutral condition.
- Do not average the signals. Read the story of the chart: a divergence plus a support bounce is a high-probability trade even with mixed moving averages.
- Trust high-conviction setups. If a setup deserves 99, give it 99.

Think like a hedge fund algorithm: risk/reward decides. A decent setup offering 3:1 reward is worth taking at 85."""


def _signed(value: float) -> str:
    return f"+{value:.2f}" if value >= 0 else f"{value:.2f}"


def _alignment_lines(entry: TrendBias, anchor: TrendBias) -> list[str]:
    if entry != anchor:
        return [
            "⚠ Trend Conflict Risk",
            "  → ENTRY CONFLICT: Entry timeframe conflicts with anchor trend - EXERCISE CAUTION",
        ]
    lines = ["✓ Trends Aligned"]
    if entry == TrendBias.BULLISH:
        lines.append("  → Both timeframes show bullish bias - favorable for LONG trades")
    elif entry == TrendBias.BEARISH:
        lines.append("  → Both timeframes show bearish bias - favorable for SHORT trades")
    return lines


def build_snapshot_prompt(snapshot: ReasoningSnapshot) -> str:
    """Render the snapshot as the user prompt."""
    rsi_note = " (NEUTRAL ZONE)" if 48 <= snapshot.rsi <= 52 else ""
    ratio = snapshot.volume_ratio
    volume_note = "✓ Confirmed" if snapshot.volume_ma > 0 and ratio >= 1.1 else "⚠ Below preferred threshold (1.1x)"
    adx_note = "(Tight range)" if snapshot.adx < 15 else "(Trending market)"

    sections = [
        "\n".join([
            "MARKET SNAPSHOT:",
            f"Pair: {snapshot.pair}",
            f"Current Price: {snapshot.current_price:.2f}",
            f"24h Change: {_signed(snapshot.price_change_24h)}%",
            f"Market Regime: {snapshot.market_regime.value}",
        ]),
        "\n".join([
            "TIMEFRAME ANALYSIS:",
            f"Entry Timeframe: {snapshot.entry_timeframe} (User selected)",
            f"Anchor Timeframe: {snapshot.anchor_timeframe} (One level higher)",
            f"Entry Trend Bias: {snapshot.entry_trend_bias.value}",
            f"Anchor Trend Bias: {snapshot.anchor_trend_bias.value}",
        ]),
        "\n".join(
            ["TREND ALIGNMENT STATUS:"]
            + _alignment_lines(snapshot.entry_trend_bias, snapshot.anchor_trend_bias)
        ),
        "\n".join([
            "TECHNICAL INDICATORS:",
            f"- RSI: {snapshot.rsi:.1f}{rsi_note}",
            f"- MACD Signal: {snapshot.macd_signal}",
            f"- Trend Strength: {snapshot.trend_strength:.1f}%",
            f"- Volume Indicator: {snapshot.volume_indicator:.1f}%",
            f"- Current Volume: {snapshot.current_volume:.0f}",
            f"- Volume MA (20): {snapshot.volume_ma:.0f}",
            f"- Volume Ratio: {ratio:.2f}x {volume_note}",
            f"- Volatility (ATR): {snapshot.volatility:.2f}",
            f"- ADX: {snapshot.adx:.1f} {adx_note}",
        ]),
    ]

    if snapshot.safety_audit:
        sections.append("\n".join(
            ["HEDGE FUND SAFETY AUDIT:", "The following institutional-grade safety checks were performed:"]
            + [f"- {c.name}: {c.status} ({c.value}) - {c.message}" for c in snapshot.safety_audit]
            + ['(Weight these audit results heavily. "FAIL" statuses represent significant '
               'institutional resistance or structural weakness.)']
        ))

    if snapshot.news_context:
        sections.append("\n".join(
            ["MARKET SENTIMENT / NEWS CONTEXT:",
             f"The following recent headlines are relevant to {snapshot.pair} or key market drivers:"]
            + [f"- {line}" for line in snapshot.news_context]
            + ["(Consider these headlines for sentiment context, mainly to support or contradict technical bias.)"]
        ))

    up = [f"  • {s.category}: {s.reason} ({s.strength:.0f})" for s in snapshot.up_signals]
    down = [f"  • {s.category}: {s.reason} ({s.strength:.0f})" for s in snapshot.down_signals]
    sections.append("\n".join(
        ["SIGNAL ANALYSIS:", f"UP Signals (Score: {snapshot.up_score:.1f}):"]
        + up
        + ["", f"DOWN Signals (Score: {snapshot.down_score:.1f}):"]
        + down
    ))

    sections.append(
        "Based on this multi-timeframe technical analysis, provide your trading decision. "
        "Pay special attention to trend alignment and volume confirmation."
    )
    return "\n\n".join(sections)


# ============================================================================
# Thought scrubbing
# ============================================================================

_I = re.IGNORECASE

# Applied in order; every match is removed
THOUGHT_SCRUB_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"\*"),
    re.compile(r"```json[\s\S]*?```"),
    re.compile(r"```[\s\S]*?```"),
    re.compile(r"^\s*\{[\s\S]*?\}\s*$", re.MULTILINE),
    # Talk about the answer format
    re.compile(r"output.*?json", _I),
    re.compile(r"in json format", _I),
    re.compile(r"json schema", _I),
    re.compile(r"json.*?structure", _I),
    re.compile(r"response.*?json", _I),
    re.compile(r"provide.*?json", _I),
    re.compile(r"return.*?json", _I),
    re.compile(r"format.*?json", _I),
    re.compile(r"the json output", _I),
    re.compile(r"json output", _I),
    re.compile(r"my.*?json", _I),
    re.compile(r"craft.*?json", _I),
    re.compile(r"generat.*?json", _I),
    re.compile(r"creat.*?json", _I),
    re.compile(r"complet.*?json", _I),
    re.compile(r"solidify.*?json", _I),
    re.compile(r"fine-tun.*?json", _I),
    # Filler
    re.compile(r"I'm solidifying my approach and fine-tuning the recommendation\.", _I),
    re.compile(r"I'm now crafting the final JSON output\.", _I),
    re.compile(r"My recommendation is complete\.", _I),
    re.compile(r"The JSON output below summarizes my current thinking\.", _I),
    re.compile(r"I've considered the contradictory signals", _I),
)

_WHITESPACE_RUN = re.compile(r"\s{2,}")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def scrub_thought(text: str) -> str:
    """Strip format chatter from a thought chunk. May return ''."""
    for pattern in THOUGHT_SCRUB_PATTERNS:
        text = pattern.sub("", text)
    return _WHITESPACE_RUN.sub(" ", text).strip()


def parse_decision(model: str, content: str) -> ReasoningDecision:
    """
    Parse buffered content into a decision.

    Raises:
        ReasoningError: If the buffer is empty
        DecisionSchemaError: If the content is not a schema-valid decision
    """
    if not content.strip():
        raise ReasoningError.empty_response(model)

    match = _JSON_OBJECT.search(content)
    if not match:
        raise DecisionSchemaError(model, "No JSON object in model response", raw_content=content)

    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise DecisionSchemaError(model, f"Invalid JSON: {e}", raw_content=content, cause=e) from e

    if not isinstance(data, dict):
        raise DecisionSchemaError(model, "Decision must be a JSON object", raw_content=content)

    try:
        return ReasoningDecision.model_validate(data)
    except PydanticValidationError as e:
        raise DecisionSchemaError(model, f"Schema violation: {e.error_count()} error(s)", raw_content=content, cause=e) from e


# ============================================================================
# Orchestrator
# ============================================================================

class ReasoningOrchestrator:
    """
    Model cascade over a ReasoningModel port.

    Usage:
        orchestrator = ReasoningOrchestrator(AnthropicReasoningModel())
        decision = await orchestrator.decide(snapshot, on_thought=listener)
    """

    def __init__(self, model: ReasoningModel, models: list[str] | None = None):
        self.model = model
        self.models = list(models) if models else list(get_config().reasoning.models)

    async def decide(
        self,
        snapshot: ReasoningSnapshot,
        on_thought: ThoughtListener | None = None,
    ) -> ReasoningDecision | None:
        """Return the first valid decision from the cascade, or None."""
        prompt = build_snapshot_prompt(snapshot)

        for model in self.models:
            try:
                decision = await self._attempt(model, prompt, on_thought)
            except ReasoningError as e:
                logger.warning(f"Model {model} failed: {e}")
                continue

            logger.info(f"Decision from {model}: {decision.direction.value} | {decision.confidence}%")
            if decision.thinking_process:
                logger.debug(f"Thinking captured ({len(decision.thinking_process)} chars)")
            return decision

        logger.error(f"All {len(self.models)} reasoning models failed for {snapshot.pair}")
        return None

    async def _attempt(
        self,
        model: str,
        prompt: str,
        on_thought: ThoughtListener | None,
    ) -> ReasoningDecision:
        thinking = ""
        content: list[str] = []

        try:
            async for chunk in self.model.stream(model, SYSTEM_PROMPT, prompt, DECISION_SCHEMA):
                if not chunk.is_thought:
                    content.append(chunk.text)
                    continue
                thought = scrub_thought(chunk.text)
                if not thought:
                    continue
                thinking += thought + " "
                await self._notify(on_thought, thought, thinking.strip())
        except ReasoningError:
            raise
        except Exception as e:
            raise ReasoningError(model, f"Stream failed: {e}", cause=e) from e

        decision = parse_decision(model, "".join(content))
        return decision.with_thinking(thinking.strip())

    @staticmethod
    async def _notify(on_thought: ThoughtListener | None, thought: str, thinking: str) -> None:
        # Listener failures stay out of the model cascade
        if on_thought is None:
            return
        try:
            await on_thought(thought, thinking)
        except Exception as e:
            logger.exception(f"Thought listener failed: {e}")
