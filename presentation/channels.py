"""
LiveChannel implementations.

WebSocketChannel pushes JSON frames to one websockets connection;
ConsoleChannel writes JSON lines for the command line.
"""

import json
import logging
import sys
from typing import Any, TextIO

from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class WebSocketChannel:
    """Sends after the connection closed are dropped silently."""

    def __init__(self, websocket: Any):
        self._ws = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    def mark_closed(self) -> None:
        self._closed = True

    async def send(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        try:
            await self._ws.send(json.dumps(payload, default=str))
        except ConnectionClosed:
            logger.info("Connection closed, further messages dropped")
            self._closed = True


class ConsoleChannel:
    """Writes each message as one JSON line; `quiet` keeps only stage completions."""

    def __init__(self, output: TextIO | None = None, quiet: bool = False):
        self._output = output or sys.stdout
        self._quiet = quiet
        self.messages: list[dict[str, Any]] = []

    @property
    def is_open(self) -> bool:
        return True

    async def send(self, payload: dict[str, Any]) -> None:
        self.messages.append(payload)
        if self._quiet and not (
            payload.get("type") == "analysis_stage" and payload.get("status") == "complete"
        ):
            return
        self._output.write(json.dumps(payload, default=str) + "\n")
        self._output.flush()
