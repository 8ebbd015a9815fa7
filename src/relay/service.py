"""Chat relay: grounds a conversation in live hospital data and streams the answer."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Sequence
from datetime import date
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from db.repository import HospitalRepository
from llm.base import BaseLLMClient, StreamChunk, ToolCall, ToolCallAccumulator
from prompts.loader import load_prompt, render_prompt
from relay.context import ContextBuilder, render_context
from relay.errors import DatabaseOperationError, RelayError
from relay.schemas import ChatTurn, ContextSnapshot
from relay.sse import encode_delta, encode_done, encode_error
from relay.tools import TOOL_SCHEMAS, ToolExecutor

LOGGER = logging.getLogger(__name__)


class RelayService:
    """Stateless per request; all collaborators are injected at construction."""

    def __init__(
        self,
        llm: BaseLLMClient,
        repository: HospitalRepository,
        *,
        tools_enabled: bool = True,
        native_tool_streaming: bool = True,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._llm = llm
        self._repo = repository
        self._context = ContextBuilder(repository)
        self._tools_enabled = tools_enabled
        self._native_tool_streaming = native_tool_streaming
        self._today = today

    def build_system_prompt(self, snapshot: ContextSnapshot) -> str:
        prompt = render_prompt("hospital_assistant.txt", context=render_context(snapshot))
        if self._tools_enabled:
            prompt += (
                "\n"
                + load_prompt("tool_guidelines.txt")
                + f"Today's date is {self._today().isoformat()}.\n"
            )
        return prompt

    async def handle_chat_request(
        self,
        messages: Sequence[ChatTurn],
        patient_id: str | None = None,
        user_id: str | None = None,
    ) -> AsyncIterator[bytes]:
        """Run everything up to the first streamed byte and return the SSE body.

        Errors raised here (gateway status, configuration, store) happen before
        any byte is sent and can be reported as ordinary HTTP errors. Errors
        after that point are reported inside the stream as an error frame.
        """

        LOGGER.info(
            "Chat request with %d messages (patient=%s, user=%s)",
            len(messages),
            patient_id,
            user_id,
        )
        try:
            snapshot = await self._context.snapshot(patient_id)
        except SQLAlchemyError as exc:
            LOGGER.exception("Context lookup failed: %s", exc)
            raise DatabaseOperationError() from exc

        conversation: list[dict[str, Any]] = [
            {"role": "system", "content": self.build_system_prompt(snapshot)},
            *(message.as_gateway_message() for message in messages),
        ]

        if not self._tools_enabled:
            stream = await self._llm.stream_chat(conversation)
            return self._relay(stream)

        executor = ToolExecutor(self._repo, patient_id)
        if self._native_tool_streaming:
            stream = await self._llm.stream_chat(conversation, tools=TOOL_SCHEMAS)
            return self._relay_with_tools(conversation, stream, executor)

        # Two-phase fallback: detect tool calls on a non-streamed reply first.
        reply = await self._llm.chat_completion(conversation, tools=TOOL_SCHEMAS)
        if not reply.tool_calls:
            stream = await self._llm.stream_chat(conversation)
            return self._relay(stream)

        follow_up = await self._tool_round_trip(conversation, reply.content, reply.tool_calls, executor)
        stream = await self._llm.stream_chat(follow_up)
        return self._relay(stream)

    async def _tool_round_trip(
        self,
        conversation: list[dict[str, Any]],
        content: str,
        calls: list[ToolCall],
        executor: ToolExecutor,
    ) -> list[dict[str, Any]]:
        LOGGER.info("Model requested tools: %s", [call.name for call in calls])
        results = await executor.execute_all(calls)
        return [
            *conversation,
            {
                "role": "assistant",
                "content": content or None,
                "tool_calls": [call.as_message_part() for call in calls],
            },
            *(result.as_message() for result in results),
        ]

    async def _relay(self, stream: AsyncIterator[StreamChunk]) -> AsyncIterator[bytes]:
        try:
            async for chunk in stream:
                if chunk.content:
                    yield encode_delta(chunk.content)
        except RelayError as exc:
            LOGGER.error("Chat stream failed mid-flight: %s", exc.detail)
            yield encode_error(exc)
            return
        yield encode_done()

    async def _relay_with_tools(
        self,
        conversation: list[dict[str, Any]],
        stream: AsyncIterator[StreamChunk],
        executor: ToolExecutor,
    ) -> AsyncIterator[bytes]:
        pending = ToolCallAccumulator()
        streamed_text: list[str] = []
        try:
            async for chunk in stream:
                if chunk.content:
                    streamed_text.append(chunk.content)
                    yield encode_delta(chunk.content)
                for delta in chunk.tool_calls:
                    pending.add(delta)

            if pending:
                follow_up = await self._tool_round_trip(
                    conversation, "".join(streamed_text), pending.calls(), executor
                )
                final_stream = await self._llm.stream_chat(follow_up)
                async for chunk in final_stream:
                    if chunk.content:
                        yield encode_delta(chunk.content)
        except RelayError as exc:
            LOGGER.error("Chat stream failed mid-flight: %s", exc.detail)
            yield encode_error(exc)
            return
        yield encode_done()
