"""
Live analysis session.

One AnalysisSession per connection. Incoming client messages go through an
inbox queue and are handled by a single consumer loop, so session state is
only ever touched from one place. A pair selection starts a pipeline run in
the background while the loop keeps reading, which is how the playback
acknowledgment reaches a run that is waiting for it.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Callable

from config import get_config
from config.schema import CryptomindConfig
from domain import AckAlreadyResolvedError, AckSignal, Verdict
from ports import EntitlementGate, LiveChannel

from .pipeline import ProgressivePipeline

logger = logging.getLogger(__name__)

PipelineFactory = Callable[[LiveChannel], ProgressivePipeline]

WELCOME = (
    "Welcome to CryptoMind AI! I provide real-time crypto and index predictions "
    "powered by AI analysis. Simply pick a trading pair below to get started."
)
NO_CREDITS = (
    "You've run out of analysis credits! Purchase more to continue analyzing pairs."
)
NEUTRAL_FOLLOW_UP = (
    "No credits consumed for this analysis. Market conditions didn't meet our "
    "confidence threshold. Try another pair!"
)
ACTIONABLE_FOLLOW_UP = "Want another prediction? Pick a different pair below."
SERVICE_UNAVAILABLE = "Market data service is temporarily unavailable. Please try again in a moment."
NO_HISTORY = "No prediction history yet. Try selecting a pair to get started!"


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class AnalysisSession:
    """
    Connection-scoped actor.

    Usage:
        session = AnalysisSession(channel, factory, gate)
        consumer = asyncio.create_task(session.run())
        async for raw in websocket:
            session.submit(raw)
        session.close()
        await consumer
    """

    def __init__(
        self,
        channel: LiveChannel,
        pipeline_factory: PipelineFactory,
        gate: EntitlementGate,
        config: CryptomindConfig | None = None,
    ):
        self.channel = channel
        self.pipeline_factory = pipeline_factory
        self.gate = gate
        self.config = config or get_config()
        self.state = SessionState.IDLE
        self.history: list[Verdict] = []
        self._inbox: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._ack: AckSignal | None = None
        self._task: asyncio.Task | None = None

    # ========================================================================
    # Inbox
    # ========================================================================

    def submit(self, raw: str | bytes | dict[str, Any]) -> None:
        """Queue one client message; malformed messages are logged and dropped."""
        if isinstance(raw, dict):
            self._inbox.put_nowait(raw)
            return
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Dropping unparsable client message: {e}")
            return
        if not isinstance(message, dict):
            logger.warning("Dropping non-object client message")
            return
        self._inbox.put_nowait(message)

    def close(self) -> None:
        """Stop the consumer loop once queued messages are handled."""
        self._inbox.put_nowait(None)

    async def run(self) -> None:
        """
        Consume the inbox until closed.

        An in-flight analysis is allowed to finish; it is not cancelled
        when the connection goes away.
        """
        while True:
            message = await self._inbox.get()
            if message is None:
                break
            try:
                await self.dispatch(message)
            except Exception as e:
                logger.exception(f"Failed to handle client message {message.get('type')!r}: {e}")

        if self._task is not None:
            await self._task

    async def dispatch(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "select_pair" and message.get("pair"):
            self._select_pair(
                str(message["pair"]),
                str(message.get("timeframe") or self.config.server.default_timeframe),
                str(message.get("userId") or self.config.server.default_user),
            )
        elif kind == "user_message" and message.get("content"):
            await self._user_message(
                str(message["content"]),
                str(message.get("userId") or self.config.server.default_user),
            )
        elif kind == "ai_thinking_complete":
            self._acknowledge()
        elif kind == "history":
            await self._send_history()
        elif kind == "new_session":
            self.history.clear()
            await self._bot_message(WELCOME)
        else:
            logger.debug(f"Ignoring client message of type {kind!r}")

    # ========================================================================
    # Handlers
    # ========================================================================

    def _select_pair(self, pair: str, timeframe: str, user_id: str) -> None:
        if self.state is SessionState.RUNNING:
            logger.info(f"Analysis already running, dropping request for {pair}")
            return
        pair, timeframe = pair.upper(), timeframe.upper()
        self.state = SessionState.RUNNING
        self._ack = AckSignal()
        self._task = asyncio.create_task(self._analyze(pair, timeframe, user_id, self._ack))

    def _acknowledge(self) -> None:
        if self._ack is None:
            logger.debug("Playback acknowledgment with no run waiting")
            return
        try:
            self._ack.resolve()
        except AckAlreadyResolvedError:
            logger.warning("Duplicate playback acknowledgment ignored")

    async def _user_message(self, content: str, user_id: str) -> None:
        if content.strip().lower() == "/history":
            await self._send_history()
            return

        compact = content.upper().replace(" ", "")
        for pair in self.config.pairs:
            if pair.replace("/", "") in compact:
                self._select_pair(pair, self.config.server.default_timeframe, user_id)
                return

        await self._pause(0.5)
        await self._bot_message(
            "I can help you with crypto and index predictions! Try selecting a pair "
            "like BTC/USDT, or use the quick select buttons below."
        )

    async def _analyze(self, pair: str, timeframe: str, user_id: str, ack: AckSignal) -> None:
        try:
            if pair not in self.config.pairs:
                await self._bot_message(f"{pair} is not supported. Try one of: {', '.join(self.config.pairs)}")
                return

            if not await self.gate.has_allowance(user_id):
                await self._insufficient_credits()
                return

            await self.channel.send({"type": "typing", "content": ""})
            await self._pause(0.6)

            pipeline = self.pipeline_factory(self.channel)
            verdict = await pipeline.run(pair, timeframe, ack=ack)

            actionable = verdict.direction.is_actionable
            if actionable and not await self.gate.consume(user_id):
                await self._insufficient_credits()
                return

            self.history.append(verdict)
            await self.channel.send({
                "type": "prediction",
                "content": verdict.explanation or f"Analysis complete for {pair}",
                "prediction": verdict.to_dict(),
            })

            balance = await self.gate.balance(user_id)
            await self.channel.send({
                "type": "credits_update",
                "content": "",
                "credits": balance,
                "unlimited": balance is None,
            })

            await self._pause(1.0)
            await self._bot_message(ACTIONABLE_FOLLOW_UP if actionable else NEUTRAL_FOLLOW_UP)
        except Exception as e:
            logger.exception(f"Session run failed for {pair}: {e}")
            await self._bot_message(SERVICE_UNAVAILABLE)
        finally:
            self.state = SessionState.IDLE
            self._ack = None

    # ========================================================================
    # Outbound helpers
    # ========================================================================

    async def _pause(self, seconds: float) -> None:
        scaled = seconds * self.config.pipeline.pace_scale
        if scaled > 0:
            await asyncio.sleep(scaled)

    async def _bot_message(self, content: str) -> None:
        await self.channel.send({"type": "bot_message", "content": content})

    async def _insufficient_credits(self) -> None:
        await self.channel.send({"type": "insufficient_credits", "content": NO_CREDITS, "credits": 0})

    async def _send_history(self) -> None:
        await self._pause(0.5)
        if not self.history:
            await self._bot_message(NO_HISTORY)
            return

        recent = self.history[-self.config.pipeline.history_size:]
        lines = [f"Last {len(recent)} Predictions:", ""]
        lines += [
            f"{i}. {v.pair} - {v.direction.value} ({v.confidence}%)"
            for i, v in enumerate(recent, start=1)
        ]
        await self._bot_message("\n".join(lines))
