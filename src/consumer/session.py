"""Client-side chat session: sends a turn to the relay and renders the stream."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

import httpx

from consumer.actions import ChatAction, parse_action_markers
from consumer.history import ConversationHistoryClient
from consumer.stream import SSEStreamDecoder, StreamEvent

LOGGER = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FAILED = "failed"


class RelayRequestError(Exception):
    """The relay rejected the request or reported a failure inside the stream."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class ChatMessage:
    role: Literal["user", "assistant"]
    content: str
    image_url: str | None = None
    error: bool = False
    actions: list[ChatAction] | None = None

    def as_request_message(self) -> dict[str, Any]:
        if self.image_url:
            return {
                "role": self.role,
                "content": [
                    {"type": "text", "text": self.content},
                    {"type": "image_url", "image_url": {"url": self.image_url}},
                ],
            }
        return {"role": self.role, "content": self.content}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return "Failed to get response"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or "Failed to get response")
    return "Failed to get response"


class _ReplyBuilder:
    """Accumulates deltas into the in-progress assistant message."""

    def __init__(self, session: ChatSession) -> None:
        self._session = session
        self.content = ""
        self.message: ChatMessage | None = None

    def append(self, delta: str) -> None:
        self.content += delta
        self._render(partial=True)

    def finalize(self) -> None:
        if self.message is not None:
            self._render(partial=False)

    def _render(self, *, partial: bool) -> None:
        parsed = parse_action_markers(self.content, partial=partial)
        actions = parsed.actions or None
        messages = self._session.messages
        # Only mutate the last entry when it is this exchange's reply.
        if self.message is not None and messages and messages[-1] is self.message:
            self.message.content = parsed.display
            self.message.actions = actions
        else:
            self.message = ChatMessage(role="assistant", content=parsed.display, actions=actions)
            messages.append(self.message)
        self._session._notify()


class ChatSession:
    """Transcript plus the Idle -> Sending -> Streaming -> Idle|Failed cycle."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        relay_url: str,
        *,
        patient_id: str | None = None,
        user_id: str | None = None,
        api_key: str | None = None,
        history: ConversationHistoryClient | None = None,
        on_change: Callable[[list[ChatMessage]], None] | None = None,
        on_error: Callable[[str, str], None] | None = None,
    ) -> None:
        self._http = http_client
        self._relay_url = relay_url
        self.patient_id = patient_id
        self.user_id = user_id
        self._api_key = api_key
        self._history = history
        self._on_change = on_change
        self._on_error = on_error
        self._lock = asyncio.Lock()

        self.messages: list[ChatMessage] = []
        self.state = SessionState.IDLE
        self.conversation_id: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.state in (SessionState.SENDING, SessionState.STREAMING)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self.messages)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def send_message(self, text: str, image: str | None = None) -> None:
        """Send one user turn and stream the reply into `messages`.

        Never raises for relay or transport failures: the user message is
        flagged with error=True and can be re-sent with retry_message().
        """

        async with self._lock:
            prior = [message for message in self.messages if not message.error]
            user_message = ChatMessage(role="user", content=text, image_url=image)
            self.messages.append(user_message)
            self.state = SessionState.SENDING
            self._notify()
            await self._save(user_message)

            try:
                reply = await self._exchange([*prior, user_message], has_image=image is not None)
            except (httpx.HTTPError, httpx.StreamError, RelayRequestError) as exc:
                self._fail(user_message, exc)
                return

            self.state = SessionState.IDLE
            self._notify()
            if reply is not None:
                await self._save(reply)

    async def _exchange(
        self, conversation: list[ChatMessage], *, has_image: bool
    ) -> ChatMessage | None:
        payload = {
            "messages": [message.as_request_message() for message in conversation],
            "patientId": self.patient_id,
            "userId": self.user_id,
            "hasImage": has_image,
        }
        builder = _ReplyBuilder(self)
        decoder = SSEStreamDecoder()

        async with self._http.stream(
            "POST", self._relay_url, json=payload, headers=self._headers()
        ) as response:
            if not response.is_success:
                await response.aread()
                raise RelayRequestError(_error_message(response), status_code=response.status_code)

            self.state = SessionState.STREAMING
            self._notify()
            async for chunk in response.aiter_bytes():
                for event in decoder.feed(chunk):
                    self._apply(event, builder)

        for event in decoder.flush():
            self._apply(event, builder)

        builder.finalize()
        if builder.message is None:
            return None
        return ChatMessage(role="assistant", content=builder.content)

    @staticmethod
    def _apply(event: StreamEvent, builder: _ReplyBuilder) -> None:
        if event.kind == "error":
            raise RelayRequestError(event.text)
        if event.kind == "delta":
            builder.append(event.text)

    def _fail(self, user_message: ChatMessage, exc: Exception) -> None:
        description = exc.message if isinstance(exc, RelayRequestError) else str(exc)
        LOGGER.error("Chat error: %s", description or exc.__class__.__name__)
        user_message.error = True
        self.state = SessionState.FAILED
        self._notify()
        if self._on_error is not None:
            self._on_error("Chat Error", description or "Failed to send message")

    async def retry_message(self, index: int) -> None:
        if not 0 <= index < len(self.messages):
            return
        message = self.messages[index]
        if message.role != "user" or not message.error:
            return

        del self.messages[index]
        # A partial reply streamed before the failure belongs to the failed turn.
        if index < len(self.messages) and self.messages[index].role == "assistant":
            del self.messages[index]
        self._notify()
        await self.send_message(message.content, message.image_url)

    def clear_messages(self) -> None:
        # In-flight exchanges are not cancelled; they keep appending to the new transcript.
        self.messages = []
        self.conversation_id = None
        self._notify()

    async def load_conversation(self, conversation_id: str) -> None:
        """Replace the transcript with a stored conversation."""

        if self._history is None:
            raise RuntimeError("No conversation history client configured.")
        stored = await self._history.list_messages(conversation_id)
        messages = []
        for item in stored:
            parsed = parse_action_markers(item["content"])
            messages.append(
                ChatMessage(
                    role=item["role"],
                    content=parsed.display if item["role"] == "assistant" else item["content"],
                    actions=(parsed.actions or None) if item["role"] == "assistant" else None,
                )
            )
        self.messages = messages
        self.conversation_id = conversation_id
        self.state = SessionState.IDLE
        self._notify()

    async def _save(self, message: ChatMessage) -> None:
        if self._history is None or not self.user_id:
            return
        try:
            if self.conversation_id is None:
                conversation = await self._history.create_conversation(
                    self.user_id,
                    patient_id=self.patient_id,
                    first_message=message.content,
                )
                self.conversation_id = conversation["id"]
            await self._history.add_message(self.conversation_id, message.role, message.content)
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            LOGGER.warning("Could not save chat message: %r", exc)
