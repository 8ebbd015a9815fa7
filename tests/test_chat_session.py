from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from consumer.actions import ChatAction
from consumer.history import ConversationHistoryClient
from consumer.session import ChatSession, SessionState
from fakes import ScriptedLLM, text_stream
from relay.errors import GatewayError
from relay.service import RelayService
from relay.sse import encode_delta, encode_done, encode_error

RELAY_URL = "http://relay.test/api/chat"


class ChunkedBody(httpx.AsyncByteStream):
    def __init__(self, body: bytes, size: int = 7) -> None:
        self._chunks = [body[i : i + size] for i in range(0, len(body), size)]

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk


def sse_response(*frames: bytes) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        stream=ChunkedBody(b"".join(frames)),
    )


class RelayStub:
    """MockTransport handler replaying one response per request."""

    def __init__(self, *responses) -> None:
        self.responses = list(responses)
        self.payloads: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _session(stub: RelayStub, **kwargs) -> tuple[ChatSession, list]:
    errors: list[tuple[str, str]] = []
    http = httpx.AsyncClient(transport=httpx.MockTransport(stub))
    session = ChatSession(http, RELAY_URL, on_error=lambda *args: errors.append(args), **kwargs)
    return session, errors


def test_streamed_reply_is_rendered_with_actions():
    stub = RelayStub(
        sse_response(
            encode_delta("Hello! Choose: [ACTION:View"),
            encode_delta(" Queue|view_queue]"),
            encode_done(),
        )
    )
    snapshots: list[list[str]] = []
    session, errors = _session(
        stub,
        patient_id="p-1",
        user_id="u-1",
        on_change=lambda messages: snapshots.append([m.content for m in messages]),
    )

    asyncio.run(session.send_message("Hi"))

    assert errors == []
    assert session.state is SessionState.IDLE
    assert not session.is_loading
    user, assistant = session.messages
    assert (user.role, user.content, user.error) == ("user", "Hi", False)
    assert assistant.content == "Hello! Choose: "
    assert assistant.actions == [ChatAction(label="View Queue", action="view_queue")]
    assert all("[ACTION" not in content for snapshot in snapshots for content in snapshot)
    assert stub.payloads[0] == {
        "messages": [{"role": "user", "content": "Hi"}],
        "patientId": "p-1",
        "userId": "u-1",
        "hasImage": False,
    }


def test_rejected_request_marks_message_failed_and_is_excluded_later():
    stub = RelayStub(
        httpx.Response(429, json={"error": "Rate limit exceeded. Please try again later."}),
        sse_response(encode_delta("Back again."), encode_done()),
    )
    session, errors = _session(stub)

    async def _scenario():
        await session.send_message("First")
        assert session.state is SessionState.FAILED
        await session.send_message("Second")

    asyncio.run(_scenario())

    assert errors == [("Chat Error", "Rate limit exceeded. Please try again later.")]
    assert [(m.content, m.error) for m in session.messages] == [
        ("First", True),
        ("Second", False),
        ("Back again.", False),
    ]
    assert stub.payloads[1]["messages"] == [{"role": "user", "content": "Second"}]
    assert session.state is SessionState.IDLE


def test_error_frame_then_retry_replaces_partial_reply():
    stub = RelayStub(
        sse_response(encode_delta("Partial"), encode_error(GatewayError())),
        sse_response(encode_delta("Full answer."), encode_done()),
    )
    session, errors = _session(stub)

    async def _scenario():
        await session.send_message("Question")
        assert [(m.content, m.error) for m in session.messages] == [
            ("Question", True),
            ("Partial", False),
        ]
        await session.retry_message(0)

    asyncio.run(_scenario())

    assert errors == [("Chat Error", "Failed to get AI response")]
    assert [(m.role, m.content, m.error) for m in session.messages] == [
        ("user", "Question", False),
        ("assistant", "Full answer.", False),
    ]
    assert stub.payloads[1]["messages"] == [{"role": "user", "content": "Question"}]


def test_transport_failure_is_reported():
    stub = RelayStub(httpx.ConnectError("connection refused"))
    session, errors = _session(stub)

    asyncio.run(session.send_message("Hello?"))

    assert session.state is SessionState.FAILED
    assert session.messages[0].error is True
    assert errors and errors[0][0] == "Chat Error"


def test_retry_ignores_messages_that_did_not_fail():
    stub = RelayStub(sse_response(encode_delta("Hi"), encode_done()))
    session, _ = _session(stub)
    asyncio.run(session.send_message("Hello"))

    asyncio.run(session.retry_message(0))
    asyncio.run(session.retry_message(9))

    assert len(stub.payloads) == 1
    assert len(session.messages) == 2


def test_image_is_sent_as_content_parts():
    stub = RelayStub(sse_response(encode_delta("A rash."), encode_done()))
    session, _ = _session(stub)

    asyncio.run(session.send_message("What is this?", image="data:image/png;base64,AAAA"))

    payload = stub.payloads[0]
    assert payload["hasImage"] is True
    assert payload["messages"][0]["content"] == [
        {"type": "text", "text": "What is this?"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]


def test_concurrent_sends_are_serialized():
    stub = RelayStub(
        sse_response(encode_delta("One."), encode_done()),
        sse_response(encode_delta("Two."), encode_done()),
    )
    session, _ = _session(stub)

    async def _scenario():
        await asyncio.gather(session.send_message("first"), session.send_message("second"))

    asyncio.run(_scenario())

    assert [m.content for m in session.messages] == ["first", "One.", "second", "Two."]
    assert [m["content"] for m in stub.payloads[1]["messages"]] == ["first", "One.", "second"]


def test_clear_messages_resets_transcript():
    stub = RelayStub(sse_response(encode_delta("Hi"), encode_done()))
    session, _ = _session(stub)
    asyncio.run(session.send_message("Hello"))

    session.clear_messages()

    assert session.messages == []
    assert session.conversation_id is None


@pytest.fixture()
def relay_app(app, hospital_repo, conversation_repo):
    import api.dependencies as deps

    def _install(llm: ScriptedLLM):
        relay = RelayService(llm, hospital_repo, tools_enabled=False)
        app.dependency_overrides[deps.get_relay] = lambda: relay
        app.dependency_overrides[deps.get_conversation_repository] = lambda: conversation_repo
        return app

    yield _install
    app.dependency_overrides.clear()


def test_session_against_relay_persists_history(relay_app, conversation_repo):
    app = relay_app(
        ScriptedLLM(streams=[text_stream("Booked! ", "[ACTION:View Appointments|view_appointments]")])
    )

    async def _scenario():
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        ) as http:
            history = ConversationHistoryClient(http, "http://test/api")
            session = ChatSession(http, "http://test/api/chat", user_id="user-1", history=history)
            await session.send_message("Book me in")

            restored = ChatSession(http, "http://test/api/chat", user_id="user-1", history=history)
            await restored.load_conversation(session.conversation_id)
            return session, restored

    session, restored = asyncio.run(_scenario())

    assert session.messages[1].content == "Booked! "
    assert session.messages[1].actions == [
        ChatAction(label="View Appointments", action="view_appointments")
    ]
    stored = asyncio.run(conversation_repo.list_messages(session.conversation_id))
    assert [(m.role, m.content) for m in stored] == [
        ("user", "Book me in"),
        ("assistant", "Booked! [ACTION:View Appointments|view_appointments]"),
    ]
    conversation = asyncio.run(conversation_repo.get_conversation(session.conversation_id))
    assert conversation.title == "Book me in"
    assert [(m.role, m.content) for m in restored.messages] == [
        ("user", "Book me in"),
        ("assistant", "Booked! "),
    ]
    assert restored.messages[1].actions == session.messages[1].actions


@pytest.mark.parametrize(
    "reply_kwargs",
    [
        {"status_code": 200, "text": "<html>not json</html>"},
        {"status_code": 200, "json": {"title": "no id here"}},
        {"status_code": 503, "json": {"detail": "down"}},
    ],
)
def test_history_failures_do_not_fail_the_exchange(reply_kwargs):
    stub = RelayStub(sse_response(encode_delta("Still answered."), encode_done()))
    history_http = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(**reply_kwargs))
    )
    history = ConversationHistoryClient(history_http, "http://history.test/api")
    session, errors = _session(stub, user_id="u-1", history=history)

    asyncio.run(session.send_message("Hello"))

    assert errors == []
    assert session.state is SessionState.IDLE
    assert session.conversation_id is None
    assert [m.content for m in session.messages] == ["Hello", "Still answered."]
