"""
Tests for the direct prediction path.

`analyze_market` is patched so each test controls the indicator snapshot.
"""

import asyncio

import pytest

from domain import Direction, WeightedSignal
from orchestration import prediction
from orchestration.prediction import generate_prediction
from orchestration.reasoning import ReasoningOrchestrator

from conftest import (
    FakeProvider,
    ScriptedModel,
    decision_script,
    failing_script,
    make_indicators,
    strong_up_indicators,
)


MODELS = ["model-a"]


@pytest.fixture
def patch_indicators(monkeypatch):
    def apply(indicators):
        monkeypatch.setattr(prediction, "analyze_market", lambda candles: indicators)
    return apply


def predict(provider, model: ScriptedModel):
    return asyncio.run(generate_prediction(
        "BTC/USDT", "M5", provider, ReasoningOrchestrator(model, MODELS)
    ))


class TestGates:
    def test_no_signal_waits_without_asking_model(self, provider, patch_indicators):
        patch_indicators(make_indicators())
        model = ScriptedModel({"model-a": decision_script()})
        verdict = predict(provider, model)

        assert verdict.direction is Direction.NEUTRAL
        assert verdict.confidence == 0
        assert verdict.duration == "Waiting for setup"
        assert verdict.explanation.startswith("Market conditions unclear.")
        assert model.calls == []

    def test_confidence_gate(self, provider, patch_indicators):
        # Single RSI vote: quality ~69 passes, confidence 84 misses the 90 bar
        patch_indicators(make_indicators(rsi=18))
        model = ScriptedModel({"model-a": decision_script()})
        verdict = predict(provider, model)

        assert verdict.direction is Direction.NEUTRAL
        assert verdict.confidence == 84
        assert verdict.duration == "Below confidence threshold"
        assert model.calls == []

    def test_quality_gate_uses_rounded_score(self, provider, patch_indicators, monkeypatch):
        # 5 of 7 aligned: quality 59.6 rounds to 60 and clears the gate
        signals = [WeightedSignal(Direction.UP, 33.62, 1.0, "Momentum", f"up {i}") for i in range(5)]
        signals += [WeightedSignal(Direction.DOWN, 20, 1.0, "Trend", f"down {i}") for i in range(2)]
        patch_indicators(make_indicators())
        monkeypatch.setattr(prediction, "collect_signals", lambda ind: signals)

        model = ScriptedModel({"model-a": decision_script()})
        verdict = predict(provider, model)

        assert 59.5 <= verdict.quality_score < 60
        assert verdict.confidence == 85
        assert verdict.duration == "Below confidence threshold"
        assert model.calls == []


class TestDecisions:
    def test_model_decision_used(self, provider, patch_indicators):
        patch_indicators(strong_up_indicators())
        model = ScriptedModel({"model-a": decision_script(thoughts=["Trend is strong."], confidence=93)})
        verdict = predict(provider, model)

        assert model.calls == ["model-a"]
        assert verdict.direction is Direction.UP
        assert verdict.confidence == 93
        assert verdict.duration == "10-15 seconds"
        assert verdict.thinking_process == "Trend is strong."
        assert verdict.explanation.startswith("Momentum and trend agree.")
        assert verdict.trade_targets is not None

    def test_model_failure_falls_back_to_technical(self, provider, patch_indicators):
        patch_indicators(strong_up_indicators())
        verdict = predict(provider, ScriptedModel({"model-a": failing_script("model-a")}))

        assert verdict.direction is Direction.UP
        assert verdict.confidence == 99
        assert verdict.explanation.startswith("Technical UP signal.")
        assert len(verdict.key_factors) == 8
        assert verdict.trade_targets.target.low > verdict.trade_targets.entry.high

    def test_neutral_model_answer_falls_back_to_technical(self, provider, patch_indicators):
        patch_indicators(strong_up_indicators())
        verdict = predict(provider, ScriptedModel({"model-a": decision_script(direction="NEUTRAL")}))
        assert verdict.direction is Direction.UP
        assert verdict.explanation.startswith("Technical UP signal.")


class TestFailures:
    def test_provider_failure_degrades(self):
        provider = FakeProvider(fail_candles=RuntimeError("down"))
        verdict = predict(provider, ScriptedModel({}))

        assert verdict.degraded
        assert verdict.direction is Direction.NEUTRAL
        assert verdict.confidence == 0
        assert verdict.duration == "Data unavailable"
