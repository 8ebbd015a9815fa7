"""Server-sent event framing for the relay's token stream.

Every frame is a single `data:` line followed by a blank line. Deltas use the
chat.completion.chunk shape so OpenAI-style consumers can read them directly.
A clean end is marked by `data: [DONE]`; a failure after the stream started is
marked by an error frame and no `[DONE]`.
"""

from __future__ import annotations

import json

from relay.errors import RelayError

DONE_SENTINEL = "[DONE]"


def _frame(data: str) -> bytes:
    return f"data: {data}\n\n".encode("utf-8")


def encode_delta(content: str) -> bytes:
    payload = {"choices": [{"index": 0, "delta": {"content": content}}]}
    return _frame(json.dumps(payload, ensure_ascii=False))


def encode_done() -> bytes:
    return _frame(DONE_SENTINEL)


def encode_error(exc: RelayError) -> bytes:
    payload = {"error": {"type": exc.error_type, "message": exc.detail}}
    return _frame(json.dumps(payload, ensure_ascii=False))
