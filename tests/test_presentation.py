"""
Tests for the markdown report, live channels, WebSocket handler and CLI.
"""

import asyncio
import io
import json
from dataclasses import replace
from datetime import datetime

import pytest
from websockets.exceptions import ConnectionClosed

import cli
from adapters.entitlements import InMemoryEntitlementGate
from config import reload_config
from domain import AnalysisStage, Direction, StageName, StageStatus, run_safety_audit
from domain.validation import fallback_trade_targets
from orchestration.reasoning import ReasoningOrchestrator
from orchestration.session import WELCOME
from presentation import (
    AnalysisServer,
    ConsoleChannel,
    ReportData,
    WebSocketChannel,
    generate_markdown_report,
    generate_section,
    write_report,
)

from conftest import FakeProvider, ScriptedModel, decision_script, make_indicators, make_verdict


def report_for(verdict, stages=None) -> ReportData:
    return ReportData(verdict, stages or [], generated_at=datetime(2026, 1, 2, 3, 4))


# ============================================================================
# Report
# ============================================================================


class TestReport:
    def test_actionable_report(self):
        verdict = replace(
            make_verdict(Direction.UP, 92),
            trade_targets=fallback_trade_targets(Direction.UP, 100.0, 1.0),
            key_factors=["RSI oversold"],
            risk_factors=["Thin volume"],
        )
        report = generate_markdown_report(report_for(verdict))

        assert report.startswith("# Market Verdict: BTC/USDT (M5)")
        assert "*Generated: 2026-01-02 03:04*" in report
        assert "🟢 UP" in report
        assert "[█████████░] 92%" in report
        assert "## Trade Plan" in report
        assert "- RSI oversold" in report
        assert "- Thin volume" in report
        assert "investment advice" in report

    def test_neutral_report_has_no_plan(self):
        report = generate_markdown_report(report_for(make_verdict(Direction.NEUTRAL, 0)))
        assert "🟡 NEUTRAL" in report
        assert "## Trade Plan" not in report
        assert "## Model Reasoning" not in report

    def test_degraded_and_synthetic_notes(self):
        verdict = replace(make_verdict(Direction.NEUTRAL, 0), degraded=True, synthetic_data=True)
        header = generate_section("header", report_for(verdict))
        assert "Degraded run" in header
        assert "synthesized" in header

    def test_audit_section_from_stages(self):
        audit = run_safety_audit(make_indicators())
        stage = AnalysisStage(StageName.HEDGE_FUND_AUDIT, 100, StageStatus.COMPLETE, data=audit.to_dict())
        section = generate_section("audit", report_for(make_verdict(), [stage]))

        assert section.startswith("## Safety Audit (score 65)")
        assert "| ADX Volatility Guard | FAIL | 10.0 | Choppy/Dead |" in section

    def test_selected_sections(self):
        report = generate_markdown_report(report_for(make_verdict()), sections=["summary"])
        assert report.startswith("## Verdict")
        assert "investment advice" not in report

    def test_unknown_section(self):
        assert generate_section("bogus", report_for(make_verdict())) == "<!-- Unknown section: bogus -->\n"

    def test_write_report(self):
        out = io.StringIO()
        content = write_report(report_for(make_verdict()), out)
        assert out.getvalue() == content + "\n"


# ============================================================================
# Channels
# ============================================================================


class FakeWebSocket:
    def __init__(self, incoming=(), fail_send: bool = False):
        self.incoming = list(incoming)
        self.sent: list[dict] = []
        self.fail_send = fail_send

    async def send(self, text):
        if self.fail_send:
            raise ConnectionClosed(None, None)
        self.sent.append(json.loads(text))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.incoming:
            yield message
        # keep the connection open long enough for replies
        await asyncio.sleep(0.05)


class TestChannels:
    def test_websocket_channel_sends_json(self):
        ws = FakeWebSocket()
        channel = WebSocketChannel(ws)
        asyncio.run(channel.send({"type": "typing", "content": ""}))
        assert ws.sent == [{"type": "typing", "content": ""}]

    def test_websocket_channel_closes_on_disconnect(self):
        ws = FakeWebSocket(fail_send=True)
        channel = WebSocketChannel(ws)
        asyncio.run(channel.send({"type": "typing"}))
        assert not channel.is_open

    def test_closed_channel_drops(self):
        ws = FakeWebSocket()
        channel = WebSocketChannel(ws)
        channel.mark_closed()
        asyncio.run(channel.send({"type": "typing"}))
        assert ws.sent == []

    def test_console_channel_quiet(self):
        out = io.StringIO()
        channel = ConsoleChannel(out, quiet=True)

        async def scenario():
            await channel.send({"type": "analysis_stage", "stage": "data_collection", "status": "in_progress"})
            await channel.send({"type": "analysis_stage", "stage": "data_collection", "status": "complete"})
            await channel.send({"type": "ai_thinking_stream", "thought": "x"})

        asyncio.run(scenario())
        lines = out.getvalue().splitlines()
        assert len(channel.messages) == 3
        assert len(lines) == 1
        assert json.loads(lines[0])["status"] == "complete"


# ============================================================================
# Server
# ============================================================================


class TestServer:
    def test_handle_runs_session_per_connection(self, fast_config):
        provider = FakeProvider()
        orchestrator = ReasoningOrchestrator(ScriptedModel({"m": decision_script()}), ["m"])
        server = AnalysisServer(provider, provider, orchestrator, InMemoryEntitlementGate(), fast_config)
        ws = FakeWebSocket([json.dumps({"type": "new_session"})])

        asyncio.run(server.handle(ws))
        assert ws.sent == [{"type": "bot_message", "content": WELCOME}]

    def test_pipeline_uses_server_settings(self, fast_config):
        provider = FakeProvider()
        orchestrator = ReasoningOrchestrator(ScriptedModel({}), ["m"])
        server = AnalysisServer(provider, provider, orchestrator, InMemoryEntitlementGate(), fast_config)
        pipeline = server.pipeline_for(ConsoleChannel(io.StringIO()))
        assert pipeline.settings.pace_scale == 0.0


# ============================================================================
# CLI
# ============================================================================


@pytest.fixture
def fast_cli(monkeypatch, tmp_path):
    """CLI wired to fakes with pacing disabled."""
    monkeypatch.chdir(tmp_path)
    config_path = tmp_path / "fast.toml"
    config_path.write_text('[pipeline]\npace_scale = 0\n\n[reasoning]\nmodels = ["m"]\n')

    provider = FakeProvider()
    monkeypatch.setattr(cli, "build_provider", lambda: provider)
    monkeypatch.setattr(
        cli, "build_orchestrator",
        lambda: ReasoningOrchestrator(ScriptedModel({"m": decision_script()}), ["m"]),
    )
    yield ["-c", str(config_path)]
    reload_config()


class TestCLI:
    def test_headlines(self, fast_cli, capsys):
        assert cli.main(fast_cli + ["headlines", "btc/usdt"]) == 0
        out = capsys.readouterr().out
        assert "[positive] Bitcoin surges past resistance" in out

    def test_analyze_json(self, fast_cli, capsys):
        assert cli.main(fast_cli + ["analyze", "BTC/USDT", "-t", "m5", "-f", "json"]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["pair"] == "BTC/USDT"
        assert payload["timeframe"] == "M5"
        assert payload["direction"] == "UP"

    def test_analyze_markdown_to_file(self, fast_cli, tmp_path):
        target = tmp_path / "report.md"
        assert cli.main(fast_cli + ["analyze", "BTC/USDT", "-o", str(target)]) == 0
        assert target.read_text().startswith("# Market Verdict: BTC/USDT (M1)")

    def test_predict_degraded_exit_code(self, fast_cli, monkeypatch, capsys):
        monkeypatch.setattr(cli, "build_provider", lambda: FakeProvider(fail_candles=RuntimeError("down")))
        assert cli.main(fast_cli + ["predict", "BTC/USDT"]) == 1
        assert json.loads(capsys.readouterr().out)["degraded"] is True

    def test_bad_config_exit_code(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert cli.main(["-c", str(tmp_path / "missing.toml"), "headlines", "BTC/USDT"]) == 2
        assert "Configuration error" in capsys.readouterr().err
