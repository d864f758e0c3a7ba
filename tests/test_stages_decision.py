"""
Tests for the stage trail, acknowledgment signal, verdict record and the
reasoning decision model.
"""

import asyncio

import pytest
from pydantic import ValidationError as PydanticValidationError

from domain import (
    AckAlreadyResolvedError,
    AckSignal,
    AnalysisStage,
    Direction,
    ReasoningDecision,
    StageName,
    StageOrderError,
    StageStatus,
    StageTrail,
)

from conftest import decision_payload, make_verdict


def _stage(name: StageName, progress: int = 0, status: StageStatus = StageStatus.IN_PROGRESS, **kw):
    return AnalysisStage(name, progress, status, **kw)


def _complete(name: StageName) -> AnalysisStage:
    return _stage(name, 100, StageStatus.COMPLETE)


# ============================================================================
# Stage trail
# ============================================================================


class TestStageTrail:
    def test_full_run_in_order(self):
        trail = StageTrail()
        for name in StageName:
            trail.record(_stage(name))
            trail.record(_stage(name, 50))
            trail.record(_complete(name))

        assert [s.stage for s in trail.stages] == list(StageName)
        assert trail.finished

    def test_updates_replace_by_name(self):
        trail = StageTrail()
        trail.record(_stage(StageName.DATA_COLLECTION, 0))
        trail.record(_stage(StageName.DATA_COLLECTION, 30))
        assert len(trail.stages) == 1
        assert trail.get(StageName.DATA_COLLECTION).progress == 30

    def test_first_stage_must_be_data_collection(self):
        with pytest.raises(StageOrderError):
            StageTrail().record(_stage(StageName.TECHNICAL_CALCULATION))

    def test_cannot_start_before_previous_completes(self):
        trail = StageTrail()
        trail.record(_stage(StageName.DATA_COLLECTION))
        with pytest.raises(StageOrderError):
            trail.record(_stage(StageName.PROTOCOL_EXECUTION))

    def test_cannot_skip_a_stage(self):
        trail = StageTrail()
        trail.record(_complete(StageName.DATA_COLLECTION))
        with pytest.raises(StageOrderError):
            trail.record(_stage(StageName.TECHNICAL_CALCULATION))

    def test_status_cannot_regress(self):
        trail = StageTrail()
        trail.record(_stage(StageName.DATA_COLLECTION, 30))
        with pytest.raises(StageOrderError):
            trail.record(_stage(StageName.DATA_COLLECTION, 0, StageStatus.PENDING))

    def test_completed_stage_cannot_reenter(self):
        trail = StageTrail()
        trail.record(_complete(StageName.DATA_COLLECTION))
        with pytest.raises(StageOrderError):
            trail.record(_stage(StageName.DATA_COLLECTION, 100))

    def test_force_final_mid_run(self):
        trail = StageTrail()
        trail.record(_stage(StageName.DATA_COLLECTION, 30))
        trail.force_final(_complete(StageName.FINAL_VERDICT))

        assert trail.finished
        assert trail.current.stage is StageName.FINAL_VERDICT
        with pytest.raises(StageOrderError):
            trail.force_final(_complete(StageName.FINAL_VERDICT))

    def test_force_final_replaces_in_progress_final(self):
        trail = StageTrail()
        for name in list(StageName)[:-1]:
            trail.record(_complete(name))
        trail.record(_stage(StageName.FINAL_VERDICT, 0))
        trail.force_final(_complete(StageName.FINAL_VERDICT))
        assert [s.stage for s in trail.stages].count(StageName.FINAL_VERDICT) == 1

    def test_force_requires_complete_final(self):
        with pytest.raises(StageOrderError):
            StageTrail().force_final(_stage(StageName.FINAL_VERDICT, 50))
        with pytest.raises(StageOrderError):
            StageTrail().force_final(_complete(StageName.AI_THINKING))


class TestAnalysisStage:
    def test_progress_bounds(self):
        with pytest.raises(ValueError):
            _stage(StageName.DATA_COLLECTION, 101)

    def test_message_shape(self):
        message = _stage(StageName.AI_THINKING, 50, data={"thinkingProcess": ""}).to_message()
        assert message["type"] == "analysis_stage"
        assert message["stage"] == "ai_thinking"
        assert message["status"] == "in_progress"
        assert "duration" not in message
        assert message["data"] == {"thinkingProcess": ""}

    def test_duration_included_when_set(self):
        message = _stage(StageName.DATA_COLLECTION, 100, StageStatus.COMPLETE, duration=12).to_message()
        assert message["duration"] == 12


# ============================================================================
# Acknowledgment
# ============================================================================


class TestAckSignal:
    def test_second_resolve_raises(self):
        ack = AckSignal()
        ack.resolve()
        assert ack.resolved
        with pytest.raises(AckAlreadyResolvedError):
            ack.resolve()

    def test_wait_returns_after_resolve(self):
        async def scenario():
            ack = AckSignal()
            asyncio.get_running_loop().call_later(0.01, ack.resolve)
            return await ack.wait(1.0)

        assert asyncio.run(scenario()) is True

    def test_wait_times_out(self):
        async def scenario():
            return await AckSignal().wait(0.01)

        assert asyncio.run(scenario()) is False


# ============================================================================
# Verdict
# ============================================================================


class TestVerdict:
    def test_to_dict(self):
        payload = make_verdict(Direction.DOWN, 91).to_dict()
        assert payload["direction"] == "DOWN"
        assert payload["confidence"] == 91
        assert payload["tradeTargets"] is None
        assert payload["degraded"] is False


# ============================================================================
# Reasoning decision
# ============================================================================


class TestReasoningDecision:
    def test_parses_camel_case(self):
        decision = ReasoningDecision.model_validate(decision_payload("DOWN", 88))
        assert decision.direction is Direction.DOWN
        assert decision.confidence == 88
        assert len(decision.key_factors) == 3
        assert decision.trade_targets.stop == pytest.approx(101.0)

    @pytest.mark.parametrize("raw,expected", [(40, 80), (150, 99), (85.5, 86), (79.6, 80)])
    def test_confidence_clamped(self, raw, expected):
        decision = ReasoningDecision.model_validate(decision_payload(confidence=raw))
        assert decision.confidence == expected

    def test_boolean_confidence_rejected(self):
        with pytest.raises(PydanticValidationError):
            ReasoningDecision.model_validate(decision_payload(confidence=True))

    def test_model_supplied_thinking_dropped(self):
        payload = decision_payload()
        payload["thinkingProcess"] = "I made this up"
        assert ReasoningDecision.model_validate(payload).thinking_process is None

    def test_risk_factor_count_enforced(self):
        payload = decision_payload()
        payload["riskFactors"] = ["only one"]
        with pytest.raises(PydanticValidationError):
            ReasoningDecision.model_validate(payload)

    def test_key_factor_count_enforced(self):
        payload = decision_payload()
        payload["keyFactors"] = ["a", "b", "c", "d", "e", "f", "g"]
        with pytest.raises(PydanticValidationError):
            ReasoningDecision.model_validate(payload)

    def test_unknown_direction_rejected(self):
        payload = decision_payload()
        payload["direction"] = "SIDEWAYS"
        with pytest.raises(PydanticValidationError):
            ReasoningDecision.model_validate(payload)

    def test_with_thinking(self):
        decision = ReasoningDecision.model_validate(decision_payload())
        assert decision.with_thinking("Checked RSI.").thinking_process == "Checked RSI."
        assert decision.with_thinking("").thinking_process is None
