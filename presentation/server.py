"""
WebSocket transport.

Each connection gets its own AnalysisSession and WebSocketChannel. The
market data provider, reasoning orchestrator and entitlement gate are
shared across connections.
"""

import asyncio
import logging
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from config import get_config
from config.schema import CryptomindConfig
from orchestration.pipeline import ProgressivePipeline
from orchestration.reasoning import ReasoningOrchestrator
from orchestration.session import AnalysisSession
from ports import CandleProvider, EntitlementGate, LiveChannel, NewsProvider

from .channels import WebSocketChannel

logger = logging.getLogger(__name__)


class AnalysisServer:
    """Accepts connections and wires one session per connection."""

    def __init__(
        self,
        candles: CandleProvider,
        news: NewsProvider,
        orchestrator: ReasoningOrchestrator,
        gate: EntitlementGate,
        config: CryptomindConfig | None = None,
    ):
        self.candles = candles
        self.news = news
        self.orchestrator = orchestrator
        self.gate = gate
        self.config = config or get_config()

    def pipeline_for(self, channel: LiveChannel) -> ProgressivePipeline:
        return ProgressivePipeline(
            self.candles, self.news, self.orchestrator, channel, self.config.pipeline
        )

    async def handle(self, websocket: Any) -> None:
        channel = WebSocketChannel(websocket)
        session = AnalysisSession(channel, self.pipeline_for, self.gate, self.config)
        consumer = asyncio.create_task(session.run())
        logger.info("Client connected")

        try:
            async for raw in websocket:
                session.submit(raw)
        except ConnectionClosed as e:
            logger.info(f"Connection closed: {e}")
        finally:
            channel.mark_closed()
            session.close()
            logger.info("Client disconnected")
            await consumer

    async def serve(self, host: str | None = None, port: int | None = None) -> None:
        """Serve until cancelled."""
        host = host or self.config.server.host
        port = port or self.config.server.port
        async with websockets.serve(self.handle, host, port):
            logger.info(f"Listening on ws://{host}:{port}")
            await asyncio.Future()
