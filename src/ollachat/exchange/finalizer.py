"""Completion finalizer - writes a turn's response exactly once.

An exchange can end several ways: the stream completes, the backend fails,
a frame is corrupt, the client goes away, or the user presses stop. Any of
them may fire, sometimes in the same loop tick. Each calls ``finalize()``;
the first call flips the latch and snapshots the accumulated text, every
later call is a no-op.

``finalize()`` is synchronous: the compare-and-set and the snapshot happen
before control returns to the event loop. The write runs as its own task,
so cancelling the caller that triggered it does not cancel the write.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum

from ollachat.store.protocol import ChatStoreProtocol

logger = logging.getLogger(__name__)

CLIENT_DISCONNECTED_NOTE = "Client Disconnected"
STOPPED_NOTE = "Stopped by user"


class TurnState(str, Enum):
    OPEN = "open"
    FINALIZED = "finalized"


class FinalizeReason(str, Enum):
    COMPLETED = "completed"
    UPSTREAM_ERROR = "upstream_error"
    MALFORMED_FRAME = "malformed_frame"
    CLIENT_DISCONNECTED = "client_disconnected"
    STOPPED = "stopped"


def annotation_for(reason: FinalizeReason, error: str | None = None) -> str | None:
    """Error text recorded with the response for a given termination reason."""
    if reason == FinalizeReason.COMPLETED:
        return None
    if reason == FinalizeReason.CLIENT_DISCONNECTED:
        return CLIENT_DISCONNECTED_NOTE
    if reason == FinalizeReason.STOPPED:
        return STOPPED_NOTE
    return error or reason.value


class CompletionFinalizer:
    """Save-once latch for one open turn.

    Args:
        store: Where the response is written.
        chat_id: Chat owning the turn.
        turn_index: Index of the open turn inside the chat.
        accumulator: Returns the response text accumulated so far.
    """

    def __init__(
        self,
        store: ChatStoreProtocol,
        chat_id: str,
        turn_index: int,
        accumulator: Callable[[], str],
    ):
        self.store = store
        self.chat_id = chat_id
        self.turn_index = turn_index
        self._accumulator = accumulator
        self.state = TurnState.OPEN
        self.reason: FinalizeReason | None = None
        self.saved: bool | None = None
        self._task: asyncio.Task | None = None

    @property
    def is_finalized(self) -> bool:
        return self.state == TurnState.FINALIZED

    def finalize(self, reason: FinalizeReason, error: str | None = None) -> asyncio.Task | None:
        """Flip the latch and schedule the write.

        Returns the write task for the winning call, None for every later one.
        """
        if self.state == TurnState.FINALIZED:
            logger.debug(
                "Chat %s turn %d already finalized (%s), ignoring %s",
                self.chat_id,
                self.turn_index,
                self.reason.value if self.reason else "?",
                reason.value,
            )
            return None
        self.state = TurnState.FINALIZED
        self.reason = reason
        text = self._accumulator()
        annotation = annotation_for(reason, error)
        self._task = asyncio.ensure_future(self._persist(text, annotation))
        return self._task

    async def _persist(self, text: str, annotation: str | None) -> None:
        try:
            self.saved = await self.store.finalize_open_turn(
                self.chat_id, text, annotation, turn_index=self.turn_index
            )
        except Exception:
            # PersistenceFailure or anything the backend raised: the client
            # connection is already closing, so log and carry on.
            self.saved = False
            logger.exception(
                "Failed to persist response for chat %s turn %d", self.chat_id, self.turn_index
            )
            return
        logger.info(
            "Finalized chat %s turn %d (%s, %d chars)",
            self.chat_id,
            self.turn_index,
            self.reason.value if self.reason else "?",
            len(text),
        )

    async def wait(self) -> None:
        """Wait for the write, if one was scheduled."""
        if self._task is not None:
            await asyncio.shield(self._task)
