"""
Anthropic reasoning model.

Streams a Messages API request with extended thinking enabled. Thinking
deltas become thought chunks and text deltas become content chunks. The
response schema is appended to the prompt since the structured decision
is read back out of the text content.
"""

import json
import logging
from typing import Any, AsyncIterator

import anthropic
from anthropic import AsyncAnthropic

from config import get_config
from ports import ReasoningChunk, ReasoningError

logger = logging.getLogger(__name__)


def schema_instructions(schema: dict[str, Any]) -> str:
    return (
        "Respond with a single JSON object and nothing else. "
        "It must validate against this JSON schema:\n"
        f"{json.dumps(schema, indent=2)}"
    )


class AnthropicReasoningModel:
    """ReasoningModel backed by AsyncAnthropic streaming."""

    def __init__(self, client: AsyncAnthropic | None = None):
        config = get_config()
        self._settings = config.reasoning
        self._client = client or AsyncAnthropic(
            api_key=config.api_keys.anthropic,
            timeout=self._settings.request_timeout_seconds,
        )

    async def stream(
        self,
        model: str,
        system_prompt: str,
        prompt: str,
        schema: dict[str, Any],
    ) -> AsyncIterator[ReasoningChunk]:
        """
        Stream thought and content chunks for one request.

        Raises:
            ReasoningError: On API or connection failures
        """
        logger.info(f"Streaming decision from {model}")
        try:
            async with self._client.messages.stream(
                model=model,
                max_tokens=self._settings.max_tokens,
                system=system_prompt,
                messages=[{
                    "role": "user",
                    "content": f"{prompt}\n\n{schema_instructions(schema)}",
                }],
                thinking={"type": "enabled", "budget_tokens": self._settings.thinking_budget},
            ) as stream:
                async for event in stream:
                    if event.type != "content_block_delta":
                        continue
                    delta = event.delta
                    if delta.type == "thinking_delta" and delta.thinking:
                        yield ReasoningChunk(True, delta.thinking)
                    elif delta.type == "text_delta" and delta.text:
                        yield ReasoningChunk(False, delta.text)
        except anthropic.APIError as e:
            logger.warning(f"Anthropic API error from {model}: {e}")
            raise ReasoningError(model, f"API error: {e}", cause=e) from e
