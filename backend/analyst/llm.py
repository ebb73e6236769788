"""
LLM completion service adapter.

The agent only depends on the ``ChatModel`` protocol: given a system prompt, a
message history and tool schemas, ``stream_turn`` yields ``TextDelta`` items
as prose arrives and finishes with exactly one ``ModelTurn`` describing the
fully parsed assistant message (text, tool calls, raw content blocks).
"""

import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Union

import anthropic

from .config import get_max_tokens, get_model_name, get_temperature
from .errors import ModelProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class ToolInvocation:
    id: str
    name: str
    args: Dict[str, Any]


@dataclass
class ModelTurn:
    """A complete assistant message as parsed from the provider."""
    text: str = ""
    tool_calls: List[ToolInvocation] = field(default_factory=list)
    content_blocks: List[Dict[str, Any]] = field(default_factory=list)
    stop_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0


ModelStreamItem = Union[TextDelta, ModelTurn]


class ChatModel(Protocol):
    model_name: str

    def stream_turn(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
    ) -> AsyncIterator[ModelStreamItem]:
        ...


def _blocks_to_turn(message) -> ModelTurn:
    """Convert an ``anthropic.types.Message`` into a ``ModelTurn``."""
    turn = ModelTurn(stop_reason=message.stop_reason)
    text_parts = []
    for block in message.content:
        if block.type == "text":
            text_parts.append(block.text)
            turn.content_blocks.append({"type": "text", "text": block.text})
        elif block.type == "tool_use":
            args = block.input if isinstance(block.input, dict) else {}
            turn.tool_calls.append(ToolInvocation(id=block.id, name=block.name, args=args))
            turn.content_blocks.append(
                {"type": "tool_use", "id": block.id, "name": block.name, "input": args}
            )
    turn.text = "".join(text_parts)
    usage = getattr(message, "usage", None)
    if usage is not None:
        turn.input_tokens = usage.input_tokens or 0
        turn.output_tokens = usage.output_tokens or 0
    return turn


class AnthropicChatModel:
    """
    ``ChatModel`` backed by the Anthropic Messages API.

    The async client is created lazily so that importing the application does
    not require ``ANTHROPIC_API_KEY``.
    """

    def __init__(
        self,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ):
        self.model_name = model or get_model_name()
        self.max_tokens = max_tokens or get_max_tokens()
        self.temperature = get_temperature() if temperature is None else temperature
        self._client = client

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic()
        return self._client

    async def stream_turn(
        self,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
    ) -> AsyncIterator[ModelStreamItem]:
        try:
            async with self.client.messages.stream(
                model=self.model_name,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=system,
                messages=messages,
                tools=tools,
            ) as stream:
                async for text in stream.text_stream:
                    if text:
                        yield TextDelta(text)
                final_message = await stream.get_final_message()
        except anthropic.APIError as e:
            logger.error(f"LLM provider error: {e}")
            raise ModelProviderError(f"{type(e).__name__}: {e}") from e

        yield _blocks_to_turn(final_message)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
