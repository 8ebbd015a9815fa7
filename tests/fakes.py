"""Test doubles and seeding helpers shared by the test modules."""

from __future__ import annotations

import json
import uuid
from datetime import date

from db.models import Appointment, Doctor, Patient, QueueToken
from llm.base import BaseLLMClient, ChatReply, StreamChunk


class ScriptedLLM(BaseLLMClient):
    """Replays canned replies and streams, recording every request.

    A stream script is a list of StreamChunk items; an exception inside the
    list is raised mid-stream, an exception in place of the list is raised
    when the stream is opened.
    """

    def __init__(self, *, streams=None, replies=None) -> None:
        self.streams = list(streams or [])
        self.replies = list(replies or [])
        self.stream_calls: list[tuple[list[dict], object]] = []
        self.completion_calls: list[tuple[list[dict], object]] = []

    async def chat_completion(self, messages, *, tools=None) -> ChatReply:
        self.completion_calls.append((list(messages), tools))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def stream_chat(self, messages, *, tools=None):
        self.stream_calls.append((list(messages), tools))
        script = self.streams.pop(0)
        if isinstance(script, Exception):
            raise script
        return self._play(script)

    async def _play(self, script):
        for item in script:
            if isinstance(item, Exception):
                raise item
            yield item


def text_stream(*pieces: str) -> list[StreamChunk]:
    return [StreamChunk(content=piece) for piece in pieces]


def system_prompt(llm: ScriptedLLM, call: int = 0) -> str:
    messages, _ = llm.stream_calls[call] if llm.stream_calls else llm.completion_calls[call]
    return messages[0]["content"]


def sse_frames(body: str) -> list[str]:
    """Split an SSE body into its `data:` payloads."""

    return [
        block[len("data: "):]
        for block in body.split("\n\n")
        if block.startswith("data: ")
    ]


def frame_contents(body: str) -> list[str]:
    contents = []
    for frame in sse_frames(body):
        if frame == "[DONE]":
            continue
        payload = json.loads(frame)
        if "choices" in payload:
            contents.append(payload["choices"][0]["delta"]["content"])
    return contents


async def add_rows(session_factory, *rows) -> None:
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


def make_doctor(**overrides) -> Doctor:
    values = {
        "id": str(uuid.uuid4()),
        "name": "Sarah Johnson",
        "specialty": "Cardiology",
        "available_slots": 5,
        "next_available": "10:00 AM",
        "is_available": True,
    }
    values.update(overrides)
    return Doctor(**values)


def make_patient(**overrides) -> Patient:
    values = {"id": str(uuid.uuid4()), "first_name": "Alex", "last_name": "Doe", "user_id": "user-1"}
    values.update(overrides)
    return Patient(**values)


def make_appointment(patient: Patient, doctor: Doctor, **overrides) -> Appointment:
    values = {
        "id": str(uuid.uuid4()),
        "patient_id": patient.id,
        "doctor_id": doctor.id,
        "scheduled_date": date(2025, 1, 20),
        "scheduled_time": "10:00 AM",
        "status": "scheduled",
    }
    values.update(overrides)
    return Appointment(**values)


def make_queue_token(patient: Patient, **overrides) -> QueueToken:
    values = {
        "id": str(uuid.uuid4()),
        "token_number": "A-12",
        "patient_id": patient.id,
        "department": "Cardiology",
        "status": "waiting",
        "estimated_wait_minutes": 25,
        "position": 3,
    }
    values.update(overrides)
    return QueueToken(**values)
