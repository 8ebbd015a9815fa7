"""Client for OpenAI-compatible chat-completion gateways over plain HTTP."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Sequence
from typing import Any

import httpx

from llm.base import BaseLLMClient, ChatReply, StreamChunk, ToolCall, parse_tool_call_deltas
from relay.errors import GatewayError, GatewayNotConfiguredError, error_for_status

LOGGER = logging.getLogger(__name__)


def chunk_from_event(event: dict[str, Any]) -> StreamChunk | None:
    """Reduce one `chat.completion.chunk` payload to a StreamChunk."""

    choices = event.get("choices") or []
    if not choices:
        return None
    choice = choices[0]
    delta = choice.get("delta") or {}
    return StreamChunk(
        content=delta.get("content"),
        tool_calls=parse_tool_call_deltas(delta.get("tool_calls")),
        finish_reason=choice.get("finish_reason"),
    )


class GatewayClient(BaseLLMClient):
    """Minimal client for the hosted AI gateway."""

    def __init__(
        self,
        *,
        endpoint: str,
        api_key: str | None,
        model: str,
        timeout: float = 90.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise GatewayNotConfiguredError()

        self._endpoint = endpoint.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    def _payload(
        self,
        messages: Sequence[dict[str, Any]],
        *,
        tools: Sequence[dict[str, Any]] | None,
        stream: bool,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": self._model, "messages": list(messages)}
        if tools:
            payload["tools"] = list(tools)
            payload["tool_choice"] = "auto"
        if stream:
            payload["stream"] = True
        return payload

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def chat_completion(
        self,
        messages: Sequence[dict[str, Any]],
        *,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> ChatReply:
        payload = self._payload(messages, tools=tools, stream=False)
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._endpoint}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            LOGGER.error("AI gateway request failed: %s", exc)
            raise GatewayError() from exc

        if not response.is_success:
            LOGGER.error("AI gateway error: %s %s", response.status_code, response.text)
            raise error_for_status(response.status_code)

        data = response.json()
        choices: list[dict] = data.get("choices", [])
        if not choices:
            raise GatewayError("AI gateway response contains no choices.")
        message = choices[0].get("message") or {}
        tool_calls = [
            ToolCall(
                id=item.get("id") or f"call_{position}",
                name=(item.get("function") or {}).get("name", ""),
                arguments=(item.get("function") or {}).get("arguments") or "{}",
            )
            for position, item in enumerate(message.get("tool_calls") or [])
        ]
        return ChatReply(content=message.get("content") or "", tool_calls=tool_calls)

    async def stream_chat(
        self,
        messages: Sequence[dict[str, Any]],
        *,
        tools: Sequence[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamChunk]:
        payload = self._payload(messages, tools=tools, stream=True)
        client = self._client()
        request = client.build_request(
            "POST",
            f"{self._endpoint}/chat/completions",
            json=payload,
            headers=self._headers(),
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            LOGGER.error("AI gateway request failed: %s", exc)
            raise GatewayError() from exc

        if not response.is_success:
            body = await response.aread()
            await response.aclose()
            await client.aclose()
            LOGGER.error(
                "AI gateway error: %s %s",
                response.status_code,
                body.decode("utf-8", errors="replace"),
            )
            raise error_for_status(response.status_code)

        return self._iter_chunks(client, response)

    async def _iter_chunks(
        self, client: httpx.AsyncClient, response: httpx.Response
    ) -> AsyncIterator[StreamChunk]:
        try:
            async for line in response.aiter_lines():
                line = line.strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    event = json.loads(data)
                except json.JSONDecodeError:
                    LOGGER.warning("Skipping undecodable gateway event: %s", data)
                    continue
                if "error" in event:
                    LOGGER.error("AI gateway reported a stream error: %s", event["error"])
                    raise GatewayError()
                chunk = chunk_from_event(event)
                if chunk is not None:
                    yield chunk
        except httpx.HTTPError as exc:
            LOGGER.error("AI gateway stream interrupted: %s", exc)
            raise GatewayError() from exc
        finally:
            await response.aclose()
            await client.aclose()
