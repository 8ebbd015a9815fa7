"""Parser for the action markers the assistant embeds in its replies.

Grammar::

    marker  := "[ACTION:" field "|" field [ "|" payload ] "]"
    field   := any characters; "\\|", "\\]" and "\\\\" escape the separators
    payload := one JSON object, read with a real JSON decoder so brackets and
               pipes inside JSON strings need no escaping

Well-formed markers are removed from the displayed text and returned as
actions. Malformed ones are reported and left in the text.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

MARKER_OPEN = "[ACTION:"

_JSON = json.JSONDecoder()


@dataclass(frozen=True)
class ChatAction:
    label: str
    action: str
    data: dict[str, Any] | None = None


@dataclass(frozen=True)
class ParsedAction:
    action: ChatAction
    start: int
    end: int


@dataclass(frozen=True)
class MalformedMarker:
    start: int
    end: int
    text: str
    reason: str


@dataclass(frozen=True)
class PendingMarker:
    """A marker still being streamed in; only produced with partial=True."""

    start: int


MarkerResult = ParsedAction | MalformedMarker | PendingMarker


@dataclass
class ActionParseResult:
    display: str
    actions: list[ChatAction] = field(default_factory=list)
    malformed: list[MalformedMarker] = field(default_factory=list)


def _read_field(text: str, cursor: int) -> tuple[str, int, str | None]:
    """Read up to an unescaped separator.

    Returns (value, next cursor, terminator). The terminator is "|" or "]"
    (consumed), "[" when a new marker starts (not consumed) or None at the end.
    """

    chars: list[str] = []
    while cursor < len(text):
        ch = text[cursor]
        if ch == "\\" and cursor + 1 < len(text):
            chars.append(text[cursor + 1])
            cursor += 2
            continue
        if ch in "|]":
            return "".join(chars), cursor + 1, ch
        if text.startswith(MARKER_OPEN, cursor):
            return "".join(chars), cursor, "["
        chars.append(ch)
        cursor += 1
    return "".join(chars), cursor, None


def _skip_spaces(text: str, cursor: int) -> int:
    while cursor < len(text) and text[cursor] in " \t":
        cursor += 1
    return cursor


def _is_truncated(text: str, exc: json.JSONDecodeError) -> bool:
    """True when the JSON failed only because the text ends before the value does."""

    if exc.msg.startswith("Unterminated string"):
        return True
    return not any(ch in " \t\r\n,:]}" for ch in text[exc.pos:])


def _malformed(text: str, start: int, end: int, reason: str) -> MalformedMarker:
    return MalformedMarker(start=start, end=end, text=text[start:end], reason=reason)


def _scan_one(text: str, start: int, partial: bool) -> MarkerResult:
    def unterminated() -> MarkerResult:
        if partial:
            return PendingMarker(start=start)
        return _malformed(text, start, len(text), "unterminated marker")

    label, cursor, term = _read_field(text, start + len(MARKER_OPEN))
    if term is None:
        return unterminated()
    if term != "|":
        return _malformed(text, start, cursor, "missing '|' between label and action")

    tag, cursor, term = _read_field(text, cursor)
    if term is None:
        return unterminated()
    if term == "[":
        return _malformed(text, start, cursor, "missing closing ']'")

    data: dict[str, Any] | None = None
    if term == "|":
        cursor = _skip_spaces(text, cursor)
        if cursor >= len(text):
            return unterminated()
        if text[cursor] != "]":
            try:
                value, cursor = _JSON.raw_decode(text, cursor)
            except json.JSONDecodeError as exc:
                if partial and _is_truncated(text, exc):
                    return PendingMarker(start=start)
                close = text.find("]", cursor)
                if close == -1:
                    return unterminated()
                return _malformed(text, start, close + 1, "invalid JSON data")
            cursor = _skip_spaces(text, cursor)
            if cursor >= len(text):
                return unterminated()
            if text[cursor] != "]":
                close = text.find("]", cursor)
                if close == -1:
                    return unterminated()
                return _malformed(text, start, close + 1, "unexpected text after JSON data")
            if not isinstance(value, dict):
                return _malformed(text, start, cursor + 1, "data must be a JSON object")
            data = value
        cursor += 1

    label, tag = label.strip(), tag.strip()
    if not label or not tag:
        return _malformed(text, start, cursor, "empty label or action")
    return ParsedAction(action=ChatAction(label=label, action=tag, data=data), start=start, end=cursor)


def scan_markers(text: str, *, partial: bool = False) -> Iterator[MarkerResult]:
    position = 0
    while True:
        start = text.find(MARKER_OPEN, position)
        if start == -1:
            return
        result = _scan_one(text, start, partial)
        yield result
        if isinstance(result, PendingMarker):
            return
        position = max(result.end, start + 1)


def parse_action_markers(text: str, *, partial: bool = False) -> ActionParseResult:
    """Split assistant text into display text and actions.

    With partial=True (mid-stream) a marker that has not finished arriving is
    hidden instead of being reported as malformed.
    """

    pieces: list[str] = []
    result = ActionParseResult(display="")
    cursor = 0
    for marker in scan_markers(text, partial=partial):
        if isinstance(marker, MalformedMarker):
            result.malformed.append(marker)
            continue
        pieces.append(text[cursor:marker.start])
        if isinstance(marker, PendingMarker):
            cursor = len(text)
            break
        result.actions.append(marker.action)
        cursor = marker.end
    pieces.append(text[cursor:])
    result.display = "".join(pieces)
    return result
