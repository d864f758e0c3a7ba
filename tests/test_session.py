"""
Tests for the connection-scoped analysis session.

The pipeline is replaced by a stub returning a fixed verdict so the tests
focus on message handling, entitlement accounting and run exclusivity.
"""

import asyncio
import json
import logging

import pytest

from adapters.entitlements import InMemoryEntitlementGate
from domain import Direction
from orchestration.session import (
    ACTIONABLE_FOLLOW_UP,
    NEUTRAL_FOLLOW_UP,
    NO_CREDITS,
    NO_HISTORY,
    SERVICE_UNAVAILABLE,
    WELCOME,
    AnalysisSession,
    SessionState,
)

from conftest import RecordingChannel, make_verdict


class StubPipeline:
    def __init__(self, verdict=None, error: Exception | None = None, wait_for_ack: bool = False):
        self.verdict = verdict or make_verdict()
        self.error = error
        self.wait_for_ack = wait_for_ack
        self.runs: list[tuple[str, str]] = []
        self.acked: bool | None = None

    def __call__(self, channel):
        return self

    async def run(self, pair, timeframe, ack=None):
        self.runs.append((pair, timeframe))
        if self.wait_for_ack:
            self.acked = await ack.wait(1.0)
        if self.error is not None:
            raise self.error
        return self.verdict


def make_gate(allowance: int = 3, unlimited=()):
    return InMemoryEntitlementGate(default_allowance=allowance, unlimited_users=list(unlimited))


def run_session(session: AnalysisSession, *messages) -> None:
    async def scenario():
        consumer = asyncio.create_task(session.run())
        for message in messages:
            session.submit(message if isinstance(message, (str, bytes)) else json.dumps(message))
        session.close()
        await consumer

    asyncio.run(scenario())


def select(pair: str = "BTC/USDT", user: str = "alice", timeframe: str = "M5") -> dict:
    return {"type": "select_pair", "pair": pair, "timeframe": timeframe, "userId": user}


def bot_texts(channel: RecordingChannel) -> list[str]:
    return [m["content"] for m in channel.of_type("bot_message")]


@pytest.fixture
def session_factory(fast_config):
    def build(pipeline=None, gate=None, channel=None):
        channel = channel or RecordingChannel()
        pipeline = pipeline or StubPipeline()
        return AnalysisSession(channel, pipeline, gate or make_gate(), fast_config), channel, pipeline

    return build


# ============================================================================
# Pair selection
# ============================================================================


class TestSelectPair:
    def test_actionable_run_sends_prediction_and_consumes(self, session_factory):
        gate = make_gate(allowance=2)
        session, channel, pipeline = session_factory(gate=gate)
        run_session(session, select())

        assert pipeline.runs == [("BTC/USDT", "M5")]
        assert channel.messages[0]["type"] == "typing"
        prediction = channel.of_type("prediction")[0]
        assert prediction["prediction"]["direction"] == "UP"
        assert channel.of_type("credits_update")[0]["credits"] == 1
        assert channel.of_type("credits_update")[0]["unlimited"] is False
        assert bot_texts(channel)[-1] == ACTIONABLE_FOLLOW_UP
        assert asyncio.run(gate.balance("alice")) == 1
        assert session.state is SessionState.IDLE

    def test_neutral_verdict_does_not_consume(self, session_factory):
        gate = make_gate(allowance=1)
        session, channel, _ = session_factory(pipeline=StubPipeline(make_verdict(Direction.NEUTRAL, 82)), gate=gate)
        run_session(session, select())

        assert channel.of_type("credits_update")[0]["credits"] == 1
        assert bot_texts(channel)[-1] == NEUTRAL_FOLLOW_UP
        assert asyncio.run(gate.balance("alice")) == 1

    def test_second_selection_while_running_is_dropped(self, session_factory):
        session, channel, pipeline = session_factory()
        run_session(session, select("BTC/USDT"), select("ETH/USDT"))

        assert pipeline.runs == [("BTC/USDT", "M5")]
        assert len(channel.of_type("prediction")) == 1

    def test_pair_and_timeframe_normalized(self, session_factory):
        session, _, pipeline = session_factory()
        run_session(session, select("eth/usdt", timeframe="h1"))
        assert pipeline.runs == [("ETH/USDT", "H1")]

    def test_default_timeframe_and_user(self, session_factory):
        session, _, pipeline = session_factory()
        run_session(session, {"type": "select_pair", "pair": "SOL/USDT"})
        assert pipeline.runs == [("SOL/USDT", "M1")]

    def test_unsupported_pair(self, session_factory):
        session, channel, pipeline = session_factory()
        run_session(session, select("DOGE/USDT"))

        assert pipeline.runs == []
        assert "DOGE/USDT is not supported" in bot_texts(channel)[0]

    def test_no_allowance(self, session_factory):
        session, channel, pipeline = session_factory(gate=make_gate(allowance=0))
        run_session(session, select())

        assert pipeline.runs == []
        message = channel.of_type("insufficient_credits")[0]
        assert message["content"] == NO_CREDITS
        assert message["credits"] == 0

    def test_allowance_exhausted_across_sessions(self, session_factory):
        gate = make_gate(allowance=1)
        first, _, _ = session_factory(gate=gate)
        run_session(first, select())

        second, channel, pipeline = session_factory(gate=gate)
        run_session(second, select())
        assert pipeline.runs == []
        assert channel.of_type("insufficient_credits")

    def test_unlimited_user(self, session_factory):
        gate = make_gate(allowance=0, unlimited=["vip"])
        session, channel, _ = session_factory(gate=gate)
        run_session(session, select(user="vip"))

        update = channel.of_type("credits_update")[0]
        assert update["credits"] is None
        assert update["unlimited"] is True

    def test_pipeline_error_reports_unavailable(self, session_factory):
        session, channel, _ = session_factory(pipeline=StubPipeline(error=RuntimeError("boom")))
        run_session(session, select())

        assert bot_texts(channel) == [SERVICE_UNAVAILABLE]
        assert session.state is SessionState.IDLE


# ============================================================================
# Acknowledgment
# ============================================================================


class TestAcknowledgment:
    def test_ack_reaches_running_pipeline(self, session_factory):
        session, _, pipeline = session_factory(pipeline=StubPipeline(wait_for_ack=True))
        run_session(session, select(), {"type": "ai_thinking_complete"})
        assert pipeline.acked is True

    def test_duplicate_ack_is_ignored(self, session_factory, caplog):
        session, channel, pipeline = session_factory(pipeline=StubPipeline(wait_for_ack=True))
        with caplog.at_level(logging.WARNING, logger="orchestration.session"):
            run_session(session, select(), {"type": "ai_thinking_complete"}, {"type": "ai_thinking_complete"})

        assert pipeline.acked is True
        assert "Duplicate playback acknowledgment" in caplog.text
        assert len(channel.of_type("prediction")) == 1

    def test_ack_without_run(self, session_factory):
        session, channel, _ = session_factory()
        run_session(session, {"type": "ai_thinking_complete"})
        assert channel.messages == []


# ============================================================================
# Other messages
# ============================================================================


class TestMessages:
    def test_history_empty(self, session_factory):
        session, channel, _ = session_factory()
        run_session(session, {"type": "history"})
        assert bot_texts(channel) == [NO_HISTORY]

    def test_history_lists_recent(self, session_factory, fast_config):
        session, channel, _ = session_factory()
        session.history = [make_verdict(pair=f"P{i}/USDT") for i in range(7)]
        run_session(session, {"type": "history"})

        text = bot_texts(channel)[0]
        assert text.startswith(f"Last {fast_config.pipeline.history_size} Predictions:")
        assert "1. P2/USDT - UP (90%)" in text
        assert "P1/USDT" not in text

    def test_new_session_clears_history(self, session_factory):
        session, channel, _ = session_factory()
        session.history = [make_verdict()]
        run_session(session, {"type": "new_session"})

        assert session.history == []
        assert bot_texts(channel) == [WELCOME]

    def test_user_message_selects_mentioned_pair(self, session_factory):
        session, _, pipeline = session_factory()
        run_session(session, {"type": "user_message", "content": "what about eth usdt?"})
        assert pipeline.runs == [("ETH/USDT", "M1")]

    def test_user_message_history_command(self, session_factory):
        session, channel, _ = session_factory()
        run_session(session, {"type": "user_message", "content": "/history"})
        assert bot_texts(channel) == [NO_HISTORY]

    def test_user_message_fallback(self, session_factory):
        session, channel, pipeline = session_factory()
        run_session(session, {"type": "user_message", "content": "hello"})
        assert pipeline.runs == []
        assert "crypto and index predictions" in bot_texts(channel)[0]

    def test_malformed_and_unknown_messages_ignored(self, session_factory):
        session, channel, pipeline = session_factory()
        run_session(session, "not json", "[1, 2]", {"type": "mystery"})
        assert channel.messages == []
        assert pipeline.runs == []

    def test_completed_run_recorded_in_history(self, session_factory):
        session, _, _ = session_factory()
        run_session(session, select())
        assert [v.pair for v in session.history] == ["BTC/USDT"]

    def test_non_string_fields_are_coerced(self, session_factory):
        session, channel, pipeline = session_factory()
        run_session(
            session,
            {"type": "select_pair", "pair": "BTC/USDT", "timeframe": 5, "userId": 42},
            {"type": "new_session"},
        )

        assert pipeline.runs == [("BTC/USDT", "5")]
        assert WELCOME in bot_texts(channel)
        assert session.state is SessionState.IDLE

    def test_handler_error_does_not_stop_session(self, session_factory, caplog):
        session, channel, _ = session_factory()

        async def broken_history():
            raise RuntimeError("boom")

        session._send_history = broken_history
        with caplog.at_level(logging.ERROR, logger="orchestration.session"):
            run_session(session, {"type": "history"}, {"type": "new_session"})

        assert bot_texts(channel) == [WELCOME]
        assert "Failed to handle client message 'history'" in caplog.text
