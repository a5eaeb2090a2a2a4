"""Stream relay and accumulator.

Turns the backend's raw chunk stream into complete NDJSON frames for the
client while building the full response text. The relay owns no
persistence; whoever terminates the exchange reads ``text`` at that moment.

Ordering: a fragment is appended to the accumulator before its frame is
handed downstream, so the accumulator never lags what the client has seen.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator

from ollachat.errors import MalformedStreamFrame
from ollachat.exchange.framing import NDJSONLineBuffer, parse_event

logger = logging.getLogger(__name__)


class StreamRelay:
    """Async iterator of ``line + "\\n"`` frames.

    Args:
        chunks: Raw byte chunks from the backend.
    """

    def __init__(self, chunks: AsyncIterable[bytes]):
        self._chunks = chunks
        self._buffer = NDJSONLineBuffer()
        self._parts: list[str] = []
        self.done = False
        self.frames_relayed = 0

    @property
    def text(self) -> str:
        """Accumulated response text so far."""
        return "".join(self._parts)

    def _accept(self, line: str) -> bytes:
        try:
            event = parse_event(line)
        except MalformedStreamFrame:
            logger.warning("Malformed frame after %d frames: %r", self.frames_relayed, line[:200])
            raise
        if event.content:
            self._parts.append(event.content)
        if event.done:
            self.done = True
        self.frames_relayed += 1
        return line.encode("utf-8") + b"\n"

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._relay()

    async def _relay(self) -> AsyncIterator[bytes]:
        async for chunk in self._chunks:
            for line in self._buffer.feed(chunk):
                yield self._accept(line)
                if self.done:
                    return
        for line in self._buffer.flush():
            yield self._accept(line)
