"""OpenAI SDK client wrapper for OpenAI-compatible gateways."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from llm.base import BaseLLMClient, ChatReply, StreamChunk, ToolCall, ToolCallDelta
from relay.errors import GatewayError, GatewayNotConfiguredError, RelayError, error_for_status

LOGGER = logging.getLogger(__name__)


def _translate(exc: openai.OpenAIError) -> RelayError:
    if isinstance(exc, openai.APIStatusError):
        LOGGER.error("AI gateway error: %s %s", exc.status_code, exc.message)
        return error_for_status(exc.status_code)
    LOGGER.error("AI gateway request failed: %s", exc)
    return GatewayError()


class OpenAIClient(BaseLLMClient):
    """Wrapper for the OpenAI Chat Completion API or any gateway speaking it."""

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        endpoint: str | None = None,
        timeout: float = 90.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise GatewayNotConfiguredError()

        # Failures are surfaced to the caller, never retried.
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=endpoint or None,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
        )
        self._model = model

    def _request_kwargs(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"model": self._model, "messages": list(messages)}
        if tools:
            kwargs["tools"] = list(tools)
            kwargs["tool_choice"] = "auto"
        return kwargs

    async def chat_completion(
        self,
        messages: Sequence[dict[str, Any]],
        *,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ChatReply:
        try:
            response = await self._client.chat.completions.create(
                **self._request_kwargs(messages, tools)
            )
        except openai.OpenAIError as exc:
            raise _translate(exc) from exc

        if not response.choices:
            raise GatewayError("AI gateway response contains no choices.")
        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
            for call in message.tool_calls or []
        ]
        return ChatReply(content=message.content or "", tool_calls=tool_calls)

    async def stream_chat(
        self,
        messages: Sequence[dict[str, Any]],
        *,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        try:
            stream = await self._client.chat.completions.create(
                stream=True,
                **self._request_kwargs(messages, tools),
            )
        except openai.OpenAIError as exc:
            raise _translate(exc) from exc
        return self._iter_chunks(stream)

    async def _iter_chunks(self, stream) -> AsyncIterator[StreamChunk]:
        try:
            async for event in stream:
                if not event.choices:
                    continue
                choice = event.choices[0]
                delta = choice.delta
                yield StreamChunk(
                    content=getattr(delta, "content", None),
                    tool_calls=[
                        ToolCallDelta(
                            index=call.index,
                            id=call.id,
                            name=call.function.name if call.function else None,
                            arguments=(call.function.arguments or "") if call.function else "",
                        )
                        for call in getattr(delta, "tool_calls", None) or []
                    ],
                    finish_reason=choice.finish_reason,
                )
        except openai.OpenAIError as exc:
            raise _translate(exc) from exc
