"""
Direct prediction path.

One-shot prediction without stage narration: the aggregator gates the
request on quality and confidence before the reasoning model is asked,
and its own result is the fallback when the model declines.
"""

import asyncio
import logging

from domain import (
    TECHNICAL_CONFIDENCE_BAND,
    Direction,
    ReasoningSnapshot,
    Verdict,
    analyze_market,
    analyze_volume,
    collect_signals,
    combine_weighted_signals,
    determine_duration,
)
from domain.aggregation import round_half_up
from domain.decision import SignalSummary
from domain.signals import split_by_direction
from domain.validation import fallback_trade_targets
from ports import CandleProvider

from .reasoning import ReasoningOrchestrator

logger = logging.getLogger(__name__)

MIN_QUALITY = 60
MIN_CONFIDENCE = 90


def _neutral(pair: str, timeframe: str, confidence: int, duration: str, explanation: str, **kwargs) -> Verdict:
    return Verdict(
        pair=pair,
        timeframe=timeframe,
        direction=Direction.NEUTRAL,
        confidence=confidence,
        duration=duration,
        explanation=explanation,
        **kwargs,
    )


async def generate_prediction(
    pair: str,
    timeframe: str,
    candles: CandleProvider,
    orchestrator: ReasoningOrchestrator,
) -> Verdict:
    """
    Produce a verdict for one pair without streaming.

    Never raises; any failure yields a neutral "Data unavailable" verdict.
    """
    try:
        market = await asyncio.to_thread(candles.fetch_candles, pair, timeframe)
        ind = analyze_market(market.candles)
        price_line = f"Current Price: ${market.current_price:.2f}"

        signals = collect_signals(ind)
        result = combine_weighted_signals(signals, 0.0, ind.market_regime, TECHNICAL_CONFIDENCE_BAND)

        quality = round_half_up(result.quality_score)
        if result.direction is Direction.NEUTRAL or quality < MIN_QUALITY:
            logger.info(f"No trade signal for {pair}: quality {quality}%")
            return _neutral(
                pair, timeframe, 0, "Waiting for setup",
                f"Market conditions unclear. Signal quality: {quality}%. "
                f"Waiting for stronger setup. {price_line} "
                f"(24h: {market.price_change_24h:+.2f}%)",
                quality_score=result.quality_score,
                synthetic_data=market.synthetic,
            )

        bonus = analyze_volume(ind, result.direction)
        final = combine_weighted_signals(signals, bonus, ind.market_regime, TECHNICAL_CONFIDENCE_BAND)

        if final.confidence < MIN_CONFIDENCE:
            logger.info(f"Confidence too low for {pair}: {final.confidence}%")
            return _neutral(
                pair, timeframe, final.confidence, "Below confidence threshold",
                f"Signal confidence below threshold ({final.confidence}%). "
                f"Alignment: {final.signal_alignment:.0f}%. Market Regime: {ind.market_regime.value}. "
                f"Waiting for higher confidence setup. {price_line}",
                quality_score=final.quality_score,
                synthetic_data=market.synthetic,
            )

        ups, downs = split_by_direction(signals)
        snapshot = ReasoningSnapshot(
            pair=pair,
            current_price=market.current_price,
            price_change_24h=market.price_change_24h,
            market_regime=ind.market_regime,
            entry_timeframe=timeframe,
            anchor_timeframe=timeframe,
            entry_trend_bias=ind.trend_bias,
            anchor_trend_bias=ind.trend_bias,
            up_signals=tuple(SignalSummary(s.category, s.reason, s.strength) for s in ups),
            down_signals=tuple(SignalSummary(s.category, s.reason, s.strength) for s in downs),
            up_score=final.up_score,
            down_score=final.down_score,
            volume_indicator=ind.volume_indicator,
            volume_ma=ind.volume_ma,
            current_volume=ind.current_volume,
            trend_strength=ind.trend_strength,
            volatility=ind.atr,
            rsi=ind.rsi,
            macd_signal="bullish" if ind.macd.histogram > 0 else "bearish",
            adx=ind.adx.value,
        )
        decision = await orchestrator.decide(snapshot)

        if decision is not None and decision.direction.is_actionable:
            logger.info(f"Model signal for {pair}: {decision.direction.value} {decision.confidence}%")
            return Verdict(
                pair=pair,
                timeframe=timeframe,
                direction=decision.direction,
                confidence=decision.confidence,
                duration=determine_duration(
                    decision.confidence, ind.volume_indicator, final.signal_alignment, ind.market_regime
                ),
                quality_score=final.quality_score,
                key_factors=list(decision.key_factors),
                risk_factors=list(decision.risk_factors),
                trade_targets=decision.trade_targets,
                explanation=(
                    f"{decision.rationale} Signal Alignment: {final.signal_alignment:.0f}%. {price_line}"
                ),
                thinking_process=decision.thinking_process,
                synthetic_data=market.synthetic,
            )

        logger.info(f"Technical signal for {pair}: {final.direction.value} {final.confidence}%")
        return Verdict(
            pair=pair,
            timeframe=timeframe,
            direction=final.direction,
            confidence=final.confidence,
            duration=determine_duration(
                final.confidence, ind.volume_indicator, final.signal_alignment, ind.market_regime
            ),
            quality_score=final.quality_score,
            key_factors=list(final.reasons),
            trade_targets=fallback_trade_targets(final.direction, market.current_price, ind.atr),
            explanation=(
                f"Technical {final.direction.value} signal. Signal Alignment: "
                f"{final.signal_alignment:.0f}%. {price_line}"
            ),
            synthetic_data=market.synthetic,
        )
    except Exception as e:
        logger.exception(f"Prediction failed for {pair}: {e}")
        return _neutral(
            pair, timeframe, 0, "Data unavailable",
            "Unable to generate prediction. Market data is temporarily unavailable.",
            degraded=True,
        )
