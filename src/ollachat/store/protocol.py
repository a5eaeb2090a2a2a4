# Chat store protocol - the interface the exchange pipeline and the API use.
# Created: 2026-10-19

from __future__ import annotations

from typing import Protocol

from ollachat.store.models import Chat, ChatSummary, Turn


class ChatStoreProtocol(Protocol):
    """Protocol for chat storage backends.

    Implement this to back chat history with something other than JSON files.
    finalize_open_turn must be a targeted update of a single turn, never a
    read-modify-write of the whole chat from a stale copy.
    """

    async def create(self, turn: Turn, name: str | None = None) -> str:
        """Create a chat seeded with one open turn, return its ID."""
        ...

    async def append_open_turn(self, chat_id: str, turn: Turn) -> int:
        """Append an open turn, return its index.

        Raises ChatNotFound or TurnInFlight.
        """
        ...

    async def finalize_open_turn(
        self,
        chat_id: str,
        response: str,
        error: str | None = None,
        *,
        turn_index: int | None = None,
    ) -> bool:
        """Write the response of an open turn. No-op (False) if already finalized."""
        ...

    async def has_open_turn(self, chat_id: str) -> bool:
        ...

    async def list(self, limit: int = 100) -> list[ChatSummary]:
        """Chat summaries, newest activity first."""
        ...

    async def count(self) -> int:
        ...

    async def get(self, chat_id: str) -> Chat | None:
        ...

    async def rename(self, chat_id: str, name: str) -> bool:
        ...

    async def delete(self, chat_id: str) -> bool:
        ...

    async def search(self, query: str, limit: int = 20) -> list[tuple[Chat, Turn]]:
        """Find turns whose user or ai text contains the query."""
        ...
