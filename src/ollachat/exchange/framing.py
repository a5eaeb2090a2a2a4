# Newline-delimited JSON framing for the token stream.
# Created: 2026-10-19
#
# Transport chunks do not line up with JSON lines, and a multi-byte UTF-8
# character can straddle two chunks. Both the server relay and the client
# consumer decode through NDJSONLineBuffer.

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ollachat.errors import MalformedStreamFrame, UpstreamError

logger = logging.getLogger(__name__)


class NDJSONLineBuffer:
    """Incremental bytes -> complete lines splitter."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        """Text received after the last newline."""
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk, return the complete non-blank lines it finished."""
        text = self._pending + self._decoder.decode(chunk)
        lines = text.split("\n")
        self._pending = lines.pop()
        return [line for line in lines if line.strip()]

    def flush(self) -> list[str]:
        """Return the trailing unterminated line, if any, and reset."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return [tail] if tail.strip() else []


@dataclass
class StreamEvent:
    """One decoded line of the token stream."""

    content: str = ""
    done: bool = False
    raw: dict[str, Any] = field(default_factory=dict)


def parse_event(line: str) -> StreamEvent:
    """Parse one line into a StreamEvent.

    Raises:
        MalformedStreamFrame: the line is not a JSON object.
        UpstreamError: the backend reported an error in-band.
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedStreamFrame(line, str(e)) from e
    if not isinstance(data, dict):
        raise MalformedStreamFrame(line, "not a JSON object")
    if data.get("error"):
        raise UpstreamError(str(data["error"]))

    message = data.get("message")
    content = ""
    if isinstance(message, dict):
        content = message.get("content") or ""
    return StreamEvent(content=content, done=bool(data.get("done")), raw=data)


def encode_event(content: str, done: bool = False, **extra: Any) -> bytes:
    """Serialize an event in the relayed shape (used by tests and fakes)."""
    payload = {"message": {"role": "assistant", "content": content}, "done": done, **extra}
    return json.dumps(payload, ensure_ascii=False).encode("utf-8") + b"\n"
