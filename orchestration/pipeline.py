"""
Progressive analysis pipeline.

Runs one prediction as eight named stages and narrates every transition
through a LiveChannel:

1. data_collection       candle window for the entry timeframe
2. protocol_execution    diagnostic log trace
3. technical_calculation indicators on entry and anchor timeframes
4. hedge_fund_audit      deterministic safety checks
5. sentiment_analysis    recent headlines
6. signal_aggregation    weighted signals and calibrated confidence
7. ai_thinking           reasoning model with streamed thoughts
8. final_verdict         validation, trade targets, terminal record

Handles partial failures gracefully: provider failures degrade inside the
adapters, the reasoning cascade degrades to the aggregator, and any other
exception becomes a neutral final_verdict. run() never raises.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from config import get_config
from config.schema import PipelineConfig
from domain import (
    LIVE_CONFIDENCE_BAND,
    AggregationResult,
    AnalysisStage,
    Direction,
    Headline,
    MarketData,
    ReasoningDecision,
    ReasoningSnapshot,
    SafetyAudit,
    StageName,
    StageStatus,
    StageTrail,
    TechnicalIndicatorSet,
    TrendBias,
    Verdict,
    analyze_market,
    analyze_volume,
    collect_signals,
    combine_weighted_signals,
    run_safety_audit,
)
from domain.decision import AuditSummary, SignalSummary
from domain.signals import WeightedSignal, split_by_direction
from domain.stages import AckSignal
from domain.validation import (
    anchor_timeframe,
    check_rsi_neutral_zone,
    check_trend_alignment,
    check_volume_confirmation,
    check_volume_divergence,
    duration_for_timeframe,
    fallback_trade_targets,
    normalize_trade_targets,
    validate_confidence,
)
from ports import CandleProvider, LiveChannel, NewsProvider

from .reasoning import ReasoningOrchestrator

logger = logging.getLogger(__name__)

THINKING_PLACEHOLDER = (
    "AI deep analysis complete. Evaluating all technical indicators and market "
    "conditions to generate high-confidence prediction."
)
UNAVAILABLE_EXPLANATION = "Data unavailable: analysis could not be completed. Standing aside."


# ============================================================================
# Run State
# ============================================================================

@dataclass
class RunContext:
    """Mutable working state of one run; discarded when the run ends."""
    pair: str
    timeframe: str
    started: float = field(default_factory=time.monotonic)
    market: MarketData | None = None
    indicators: TechnicalIndicatorSet | None = None
    anchor_timeframe: str = ""
    anchor: TechnicalIndicatorSet | None = None
    audit: SafetyAudit | None = None
    headlines: list[Headline] = field(default_factory=list)
    signals: list[WeightedSignal] = field(default_factory=list)
    aggregation: AggregationResult | None = None
    decision: ReasoningDecision | None = None


def _elapsed_ms(since: float) -> int:
    return int((time.monotonic() - since) * 1000)


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _summarize(signals: list[WeightedSignal]) -> tuple[SignalSummary, ...]:
    return tuple(SignalSummary(s.category, s.reason, s.strength) for s in signals)


# ============================================================================
# Pipeline
# ============================================================================

class ProgressivePipeline:
    """
    Stage-by-stage prediction run narrated to one subscriber.

    Usage:
        pipeline = ProgressivePipeline(provider, provider, orchestrator, channel)
        verdict = await pipeline.run("BTC/USDT", "M5", ack=AckSignal())
    """

    def __init__(
        self,
        candles: CandleProvider,
        news: NewsProvider,
        orchestrator: ReasoningOrchestrator,
        channel: LiveChannel | None = None,
        settings: PipelineConfig | None = None,
    ):
        self.candles = candles
        self.news = news
        self.orchestrator = orchestrator
        self.channel = channel
        self.settings = settings or get_config().pipeline
        self.trail = StageTrail()

    # ------------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------------

    async def _pause(self, seconds: float) -> None:
        scaled = seconds * self.settings.pace_scale
        if scaled > 0:
            await asyncio.sleep(scaled)

    async def _send(self, payload: dict[str, Any]) -> None:
        if self.channel is not None and self.channel.is_open:
            await self.channel.send(payload)

    async def _emit(
        self,
        stage: StageName,
        progress: int,
        status: StageStatus = StageStatus.IN_PROGRESS,
        duration: int | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        update = self.trail.record(AnalysisStage(stage, progress, status, duration, data))
        await self._send(update.to_message())

    async def _stream_thought(self, thought: str, full_thinking: str) -> None:
        await self._send({
            "type": "ai_thinking_stream",
            "thought": thought,
            "fullThinking": full_thinking,
        })

    # ------------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------------

    async def run(self, pair: str, timeframe: str, ack: AckSignal | None = None) -> Verdict:
        """
        Execute one full run. Always ends with exactly one complete
        final_verdict stage and returns the verdict.
        """
        self.trail = StageTrail()
        ctx = RunContext(pair=pair, timeframe=timeframe)
        logger.info(f"Starting analysis for {pair} {timeframe}")

        try:
            await self._collect_data(ctx)
            await self._protocol_trace(ctx)
            await self._technical(ctx)
            await self._audit(ctx)
            await self._sentiment(ctx)
            await self._aggregate(ctx)
            await self._think(ctx, ack)
            verdict = await self._final_verdict(ctx)
        except Exception as e:
            logger.exception(f"Analysis failed for {pair} {timeframe}: {e}")
            verdict = await self._fail(ctx)

        logger.info(
            f"Verdict for {pair} {timeframe}: {verdict.direction.value} "
            f"{verdict.confidence}% ({_elapsed_ms(ctx.started)}ms)"
        )
        return verdict

    # ------------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------------

    async def _collect_data(self, ctx: RunContext) -> None:
        stage = StageName.DATA_COLLECTION
        await self._emit(stage, 0)
        await self._pause(0.5)
        await self._emit(stage, 30)

        started = time.monotonic()
        market = await asyncio.to_thread(self.candles.fetch_candles, ctx.pair, ctx.timeframe)
        if not market.candles:
            raise ValueError(f"No candles for {ctx.pair} {ctx.timeframe}")
        ctx.market = market
        fetch_ms = _elapsed_ms(started)

        await self._pause(1.0)
        await self._emit(stage, 100, StageStatus.COMPLETE, fetch_ms, {
            "currentPrice": market.current_price,
            "priceChange24h": market.price_change_24h,
            "volumeChange24h": market.volume_change_24h,
            "candlesRetrieved": len(market.candles),
            "lastUpdate": datetime.now().isoformat(),
            "synthetic": market.synthetic,
        })
        await self._pause(0.8)

    async def _protocol_trace(self, ctx: RunContext) -> None:
        stage = StageName.PROTOCOL_EXECUTION
        steps = [
            ("INIT", "INITIALIZING GLASS BOX DIAGNOSTICS..."),
            ("CONNECT", f"CONNECTING TO EXCHANGE: FETCHING {ctx.pair} STREAMS..."),
            ("INGEST", f"DATA RECEIVED: {ctx.timeframe} STREAMS INGESTED. ANCHOR SYNC QUEUED."),
            ("NEWS", f"NEWS INGESTION: {self.settings.news_limit} HEADLINES QUEUED FOR SENTIMENT AUDIT."),
            ("STABLE", "DATA FEED STABILIZED. TRANSITIONING TO PROTOCOL EXECUTION..."),
        ]
        logs = [
            {"action": action, "status": "SUCCESS", "timestamp": _clock(), "details": details}
            for action, details in steps
        ]

        await self._emit(stage, 0, data={"logs": []})
        for i in range(len(logs)):
            await self._pause(0.3)
            await self._emit(stage, round((i + 1) / len(logs) * 100), data={"logs": logs[:i + 1]})
        await self._emit(stage, 100, StageStatus.COMPLETE, data={"logs": logs})
        await self._pause(0.8)

    async def _technical(self, ctx: RunContext) -> None:
        stage = StageName.TECHNICAL_CALCULATION
        await self._emit(stage, 0)
        started = time.monotonic()

        ctx.indicators = analyze_market(ctx.market.candles)
        await self._pause(2.0)

        ctx.anchor_timeframe = anchor_timeframe(ctx.timeframe)
        try:
            anchor_market = await asyncio.to_thread(
                self.candles.fetch_candles, ctx.pair, ctx.anchor_timeframe
            )
            ctx.anchor = analyze_market(anchor_market.candles)
        except Exception as e:
            logger.warning(f"Anchor timeframe {ctx.anchor_timeframe} unavailable for {ctx.pair}: {e}")

        await self._emit(stage, 50)
        await self._pause(2.0)

        ind = ctx.indicators
        await self._emit(stage, 100, StageStatus.COMPLETE, _elapsed_ms(started), {
            "indicators": ind.to_dict(),
            "anchorTimeframe": ctx.anchor_timeframe,
            "anchorTrendBias": ctx.anchor.trend_bias.value if ctx.anchor else None,
        })
        await self._pause(0.5)

    async def _audit(self, ctx: RunContext) -> None:
        stage = StageName.HEDGE_FUND_AUDIT
        await self._emit(stage, 0)
        await self._pause(0.8)
        ctx.audit = run_safety_audit(ctx.indicators)
        await self._emit(stage, 100, StageStatus.COMPLETE, data=ctx.audit.to_dict())
        await self._pause(0.8)

    async def _sentiment(self, ctx: RunContext) -> None:
        stage = StageName.SENTIMENT_ANALYSIS
        await self._emit(stage, 0, data={"headlines": []})
        await self._pause(1.0)

        try:
            ctx.headlines = await asyncio.to_thread(
                self.news.fetch_headlines, ctx.pair, self.settings.news_limit
            )
        except Exception as e:
            logger.warning(f"News unavailable for {ctx.pair}: {e}")
            ctx.headlines = []

        await self._emit(stage, 100, StageStatus.COMPLETE, data={
            "headlines": [h.to_dict() for h in ctx.headlines],
        })
        await self._pause(0.8)

    async def _aggregate(self, ctx: RunContext) -> None:
        stage = StageName.SIGNAL_AGGREGATION
        await self._emit(stage, 0)
        started = time.monotonic()
        await self._pause(1.5)

        ind = ctx.indicators
        ctx.signals = collect_signals(ind)
        preliminary = combine_weighted_signals(ctx.signals, 0.0, ind.market_regime, LIVE_CONFIDENCE_BAND)
        bonus = analyze_volume(ind, preliminary.direction)
        ctx.aggregation = combine_weighted_signals(ctx.signals, bonus, ind.market_regime, LIVE_CONFIDENCE_BAND)

        await self._emit(stage, 50)
        await self._pause(1.5)

        result = ctx.aggregation
        neutral = sum(1 for s in ctx.signals if s.direction is Direction.NEUTRAL)
        await self._emit(stage, 100, StageStatus.COMPLETE, _elapsed_ms(started), {
            "upSignalsCount": result.up_count,
            "downSignalsCount": result.down_count,
            "neutralSignalsCount": neutral,
            "upScore": result.up_score,
            "downScore": result.down_score,
            "signalAlignment": result.signal_alignment,
            "marketRegime": ind.market_regime.value,
            "aggregation": result.to_dict(),
        })
        await self._pause(0.5)

    def _snapshot(self, ctx: RunContext) -> ReasoningSnapshot:
        ind = ctx.indicators
        ups, downs = split_by_direction(ctx.signals)
        return ReasoningSnapshot(
            pair=ctx.pair,
            current_price=ctx.market.current_price,
            price_change_24h=ctx.market.price_change_24h,
            market_regime=ind.market_regime,
            entry_timeframe=ctx.timeframe,
            anchor_timeframe=ctx.anchor_timeframe,
            entry_trend_bias=ind.trend_bias,
            anchor_trend_bias=ctx.anchor.trend_bias if ctx.anchor else TrendBias.NEUTRAL,
            up_signals=_summarize(ups),
            down_signals=_summarize(downs),
            up_score=ctx.aggregation.up_score,
            down_score=ctx.aggregation.down_score,
            volume_indicator=ind.volume_indicator,
            volume_ma=ind.volume_ma,
            current_volume=ind.current_volume,
            trend_strength=ind.trend_strength,
            volatility=ind.atr,
            rsi=ind.rsi,
            macd_signal="bullish" if ind.macd.histogram > 0 else "bearish",
            adx=ind.adx.value,
            news_context=tuple(h.context_line() for h in ctx.headlines[:self.settings.news_context_size]),
            safety_audit=tuple(
                AuditSummary(c.name, c.status.value, c.value, c.message) for c in ctx.audit.checks
            ),
        )

    async def _think(self, ctx: RunContext, ack: AckSignal | None) -> None:
        stage = StageName.AI_THINKING
        model_label = self.orchestrator.models[0] if self.orchestrator.models else "unavailable"
        started = time.monotonic()

        def payload(thinking: str) -> dict[str, Any]:
            return {
                "thinkingProcess": thinking,
                "analysisTime": _elapsed_ms(started),
                "modelUsed": model_label,
            }

        await self._emit(stage, 0, data=payload(""))
        snapshot = self._snapshot(ctx)
        await self._pause(2.0)
        await self._emit(stage, 50, data=payload(""))

        ctx.decision = await self.orchestrator.decide(snapshot, on_thought=self._stream_thought)
        thinking = (ctx.decision.thinking_process if ctx.decision else None) or THINKING_PLACEHOLDER

        await self._pause(1.0)
        await self._emit(stage, 100, data=payload(thinking))
        await self._pause(0.5)

        if ack is not None:
            if not await ack.wait(self.settings.ack_timeout_seconds):
                logger.warning(f"No playback acknowledgment for {ctx.pair} within "
                               f"{self.settings.ack_timeout_seconds}s, continuing")
        else:
            await self._pause(self.settings.playback_delay_seconds)

        await self._emit(stage, 100, StageStatus.COMPLETE, _elapsed_ms(started), payload(thinking))

    async def _final_verdict(self, ctx: RunContext) -> Verdict:
        stage = StageName.FINAL_VERDICT
        await self._emit(stage, 0)
        started = time.monotonic()
        await self._pause(1.0)

        verdict = self.build_verdict(ctx)

        await self._pause(1.5)
        await self._emit(stage, 100, StageStatus.COMPLETE, _elapsed_ms(started), verdict.to_dict())
        return verdict

    def build_verdict(self, ctx: RunContext) -> Verdict:
        """Apply validation rules to the proposed direction and build the verdict."""
        ind = ctx.indicators
        market = ctx.market
        result = ctx.aggregation
        decision = ctx.decision

        direction = decision.direction if decision else result.direction
        confidence = decision.confidence if decision else result.confidence
        duration = decision.duration if decision else duration_for_timeframe(ctx.timeframe)

        volume = check_volume_confirmation(ind.current_volume, ind.volume_ma)
        divergence = check_volume_divergence(market.candles, direction)
        rsi = check_rsi_neutral_zone(ind.rsi)
        if ctx.anchor is not None:
            alignment_reason = check_trend_alignment(ctx.anchor.trend_bias, direction).reason
        else:
            alignment_reason = "No anchor check performed"

        outcome = validate_confidence(
            confidence,
            volume.value if volume.value is not None else 1.0,
            rsi_neutral=not rsi.passed,
            volume_divergence=not divergence.passed,
        )
        adx_line = (
            f"ADX: {ind.adx.value:.1f} - "
            f"{'Tight Range' if ind.adx.value < 15 else 'Directional Momentum'}"
        )

        common = dict(
            pair=ctx.pair,
            timeframe=ctx.timeframe,
            duration=duration,
            quality_score=result.quality_score,
            thinking_process=decision.thinking_process if decision else None,
            synthetic_data=market.synthetic,
        )

        if not outcome.proceed:
            logger.info(f"Verdict rejected for {ctx.pair}: {outcome.rejection_reason}")
            return Verdict(
                direction=Direction.NEUTRAL,
                confidence=outcome.confidence,
                key_factors=[alignment_reason, volume.reason, rsi.reason, adx_line],
                risk_factors=[outcome.rejection_reason or "Multiple validation checks failed"],
                explanation=f"Market Analysis: Neutral leaning. {outcome.rejection_reason}. Standing aside.",
                **common,
            )

        total = len(ctx.signals) or 1
        key_factors = list(decision.key_factors) if decision else [
            f"{result.up_count}/{total} indicators bullish "
            f"({result.signal_alignment:.1f}% alignment)",
            alignment_reason,
            f"{ind.market_regime.value} market (ADX: {ind.adx.value:.1f})",
            volume.reason,
        ]
        high_volatility = market.current_price > 0 and ind.atr / market.current_price > 0.01
        risk_factors = list(decision.risk_factors) if decision else [
            divergence.reason if not divergence.passed else "Monitor for volume decrease",
            "High volatility - wider stops recommended" if high_volatility else "Normal volatility range",
        ]

        targets = None
        if direction.is_actionable:
            targets = normalize_trade_targets(
                decision.trade_targets if decision else None,
                direction, market.current_price, ind.atr,
            ) or fallback_trade_targets(direction, market.current_price, ind.atr)

        explanation = (
            decision.rationale if decision
            else f"Strong {direction.value} signal detected with {outcome.confidence}% confidence"
        )
        return Verdict(
            direction=direction,
            confidence=outcome.confidence,
            key_factors=key_factors,
            risk_factors=risk_factors,
            trade_targets=targets,
            explanation=explanation,
            **common,
        )

    async def _fail(self, ctx: RunContext) -> Verdict:
        """Terminate a failed run with a neutral, degraded verdict."""
        verdict = Verdict(
            pair=ctx.pair,
            timeframe=ctx.timeframe,
            direction=Direction.NEUTRAL,
            confidence=0,
            duration="Data unavailable",
            key_factors=["Data collection error"],
            risk_factors=["Technical failure"],
            explanation=UNAVAILABLE_EXPLANATION,
            degraded=True,
            synthetic_data=ctx.market.synthetic if ctx.market else False,
        )
        if self.trail.finished:
            return verdict

        update = self.trail.force_final(AnalysisStage(
            StageName.FINAL_VERDICT, 100, StageStatus.COMPLETE,
            _elapsed_ms(ctx.started), verdict.to_dict(),
        ))
        await self._send(update.to_message())
        return verdict
