"""Incremental decoder for the relay's server-sent event stream.

Bytes arrive in arbitrary network chunks, so lines (and UTF-8 sequences) may be
split anywhere. The decoder buffers text until a newline completes a line and
only then interprets it.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

LOGGER = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class StreamEvent:
    kind: Literal["delta", "done", "error"]
    text: str = ""
    error_type: str | None = None


def _delta_content(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


def parse_line(line: str) -> StreamEvent | None:
    """Interpret one complete line. Raises json.JSONDecodeError on a bad payload."""

    if line.endswith("\r"):
        line = line[:-1]
    if line.startswith(":") or not line.strip():
        return None
    if not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX):].strip()
    if data == DONE_SENTINEL:
        return StreamEvent(kind="done")

    payload = json.loads(data)
    if isinstance(payload, dict) and "error" in payload:
        error = payload["error"]
        if isinstance(error, dict):
            return StreamEvent(
                kind="error",
                text=str(error.get("message") or "Stream failed"),
                error_type=error.get("type"),
            )
        return StreamEvent(kind="error", text=str(error))

    content = _delta_content(payload)
    if content:
        return StreamEvent(kind="delta", text=content)
    return None


class SSEStreamDecoder:
    """Turns raw response bytes into delta / done / error events."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._retry_line: str | None = None
        self.finished = False

    def feed(self, chunk: bytes) -> list[StreamEvent]:
        if self.finished:
            return []
        self._buffer += self._decoder.decode(chunk)
        return self._drain()

    def _drain(self) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        while not self.finished:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]

            try:
                event = parse_line(line)
            except json.JSONDecodeError:
                if self._retry_line == line:
                    LOGGER.warning("Dropping undecodable stream line: %s", line)
                    self._retry_line = None
                    continue
                # Put it back and retry once more bytes have arrived.
                self._retry_line = line
                self._buffer = line + "\n" + self._buffer
                break

            self._retry_line = None
            if event is None:
                continue
            events.append(event)
            if event.kind != "delta":
                self.finished = True
        return events

    def flush(self) -> list[StreamEvent]:
        """Process whatever is left once the body has ended."""

        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        events: list[StreamEvent] = []
        if self.finished or not tail.strip():
            return events

        for raw in tail.split("\n"):
            if not raw:
                continue
            try:
                event = parse_line(raw)
            except json.JSONDecodeError:
                LOGGER.debug("Ignoring trailing partial line: %s", raw)
                continue
            if event is None:
                continue
            events.append(event)
            if event.kind != "delta":
                self.finished = True
                break
        return events
