"""Shared abstractions for chat-completion gateway clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCall:
    """A function call requested by the model. `arguments` is the raw JSON text."""

    id: str
    name: str
    arguments: str

    def as_message_part(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass
class ChatReply:
    """Complete (non-streamed) assistant reply."""

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


@dataclass
class ToolCallDelta:
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass
class StreamChunk:
    """One streamed event reduced to the fields the relay cares about."""

    content: str | None = None
    tool_calls: list[ToolCallDelta] = field(default_factory=list)
    finish_reason: str | None = None


class ToolCallAccumulator:
    """Reassembles tool calls from streamed fragments, keyed by their index."""

    def __init__(self) -> None:
        self._calls: dict[int, ToolCallDelta] = {}

    def add(self, delta: ToolCallDelta) -> None:
        current = self._calls.setdefault(delta.index, ToolCallDelta(index=delta.index))
        if delta.id:
            current.id = delta.id
        # Some gateways repeat the full name in every chunk instead of sending fragments.
        if delta.name and delta.name != current.name:
            current.name = (current.name or "") + delta.name
        current.arguments += delta.arguments

    def __bool__(self) -> bool:
        return bool(self._calls)

    def calls(self) -> list[ToolCall]:
        return [
            ToolCall(
                id=partial.id or f"call_{index}",
                name=partial.name or "",
                arguments=partial.arguments or "{}",
            )
            for index, partial in sorted(self._calls.items())
        ]


def parse_tool_call_deltas(raw: Sequence[dict[str, Any]] | None) -> list[ToolCallDelta]:
    deltas: list[ToolCallDelta] = []
    for position, item in enumerate(raw or []):
        function = item.get("function") or {}
        deltas.append(
            ToolCallDelta(
                index=item.get("index", position),
                id=item.get("id"),
                name=function.get("name"),
                arguments=function.get("arguments") or "",
            )
        )
    return deltas


class BaseLLMClient(ABC):
    """Abstract base class for chat-completion gateways."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: Sequence[dict[str, Any]],
        *,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ChatReply:
        """Return a complete assistant reply, including any requested tool calls."""

    @abstractmethod
    async def stream_chat(
        self,
        messages: Sequence[dict[str, Any]],
        *,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Open a streamed completion.

        Upstream status errors are raised when awaiting this method, before the
        first chunk is produced; the returned iterator yields the chunks.
        """
