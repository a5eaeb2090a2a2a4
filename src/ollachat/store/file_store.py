"""File-based chat store.

Created: 2026-10-19
Implements ChatStoreProtocol using one JSON document per chat.

Storage layout:
~/.ollachat/chats/
    <chat_id>.json      # One chat document with all its turns

Design notes:
- In-memory index of all chats, loaded once at start-up
- Atomic writes using temp file + rename
- One asyncio.Lock serializes mutations; each mutation touches the
  in-memory document and rewrites only that chat's file
- Turns left open by a previous process are finalized on load
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from ollachat.errors import ChatNotFound, PersistenceFailure, TurnInFlight
from ollachat.store.models import (
    Chat,
    ChatSummary,
    Turn,
    TurnStatus,
    default_chat_name,
    format_annotation,
    now_iso,
)

logger = logging.getLogger(__name__)

INTERRUPTED_NOTE = "Interrupted"


class FileChatStore:
    """File-based implementation of chat storage."""

    def __init__(self, base_path: Path | None = None, max_error_chars: int = 100):
        """Initialize the store.

        Args:
            base_path: Directory for chat files. Defaults to ~/.ollachat/chats/
            max_error_chars: Cap on the error text in finalize annotations
        """
        if base_path is None:
            base_path = Path.home() / ".ollachat" / "chats"

        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.max_error_chars = max_error_chars

        self._chats: dict[str, Chat] = {}
        self._lock = asyncio.Lock()

        self._load_all()

    # =========================================================================
    # File I/O Helpers
    # =========================================================================

    def _chat_path(self, chat_id: str) -> Path:
        return self.base_path / f"{chat_id}.json"

    def _load_json(self, path: Path) -> dict[str, Any] | None:
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error(f"Error loading {path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def _save_json(self, path: Path, data: dict[str, Any]) -> None:
        """Save data to JSON file atomically. Raises PersistenceFailure."""
        temp_path = path.with_suffix(".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_path.replace(path)
        except OSError as e:
            logger.error(f"Error saving {path}: {e}")
            if temp_path.exists():
                temp_path.unlink()
            raise PersistenceFailure(f"Could not write {path.name}: {e}") from e

    def _persist(self, chat: Chat) -> None:
        self._save_json(self._chat_path(chat.id), chat.to_dict())

    def _load_all(self) -> None:
        """Load every chat document into memory."""
        for path in sorted(self.base_path.glob("*.json")):
            data = self._load_json(path)
            if data is None:
                continue
            data.setdefault("id", path.stem)
            chat = Chat.from_dict(data)
            self._chats[chat.id] = chat

            index = chat.open_turn_index
            if index is not None:
                turn = chat.messages[index]
                turn.ai += format_annotation(INTERRUPTED_NOTE, self.max_error_chars)
                turn.error = INTERRUPTED_NOTE
                turn.status = TurnStatus.FINALIZED
                try:
                    self._persist(chat)
                except PersistenceFailure:
                    # Still open on disk; recovered again on the next load
                    pass
                logger.warning(f"Recovered open turn {index} in chat {chat.id}")

        logger.info(f"Chat store loaded: {len(self._chats)} chats from {self.base_path}")

    @staticmethod
    def _copy(chat: Chat) -> Chat:
        return Chat.from_dict(chat.to_dict())

    # =========================================================================
    # Turn lifecycle
    # =========================================================================

    async def create(self, turn: Turn, name: str | None = None) -> str:
        """Create a chat seeded with one open turn."""
        turn.status = TurnStatus.OPEN
        turn.ai = ""
        chat = Chat(name=name or default_chat_name(turn.user), messages=[turn])
        chat.datetime = turn.datetime
        async with self._lock:
            self._persist(chat)
            self._chats[chat.id] = chat
        logger.debug(f"Created chat {chat.id}")
        return chat.id

    async def append_open_turn(self, chat_id: str, turn: Turn) -> int:
        """Append an open turn to an existing chat and return its index."""
        turn.status = TurnStatus.OPEN
        turn.ai = ""
        async with self._lock:
            chat = self._chats.get(chat_id)
            if chat is None:
                raise ChatNotFound(f"Chat not found: {chat_id}")
            if chat.open_turn_index is not None:
                raise TurnInFlight(f"Chat {chat_id} already has a response in progress")
            chat.messages.append(turn)
            chat.datetime = turn.datetime
            try:
                self._persist(chat)
            except PersistenceFailure:
                chat.messages.pop()
                raise
            return len(chat.messages) - 1

    async def finalize_open_turn(
        self,
        chat_id: str,
        response: str,
        error: str | None = None,
        *,
        turn_index: int | None = None,
    ) -> bool:
        """Set the response of one open turn. Returns False if nothing changed."""
        async with self._lock:
            chat = self._chats.get(chat_id)
            if chat is None:
                logger.warning(f"Finalize skipped, chat {chat_id} no longer exists")
                return False
            index = len(chat.messages) - 1 if turn_index is None else turn_index
            if not 0 <= index < len(chat.messages):
                logger.warning(f"Finalize skipped, chat {chat_id} has no turn {index}")
                return False
            turn = chat.messages[index]
            if not turn.is_open:
                logger.debug(f"Turn {index} of chat {chat_id} already finalized")
                return False

            previous = (turn.ai, turn.error, turn.datetime, chat.datetime)
            stamp = now_iso()
            turn.ai = response
            if error:
                turn.ai += format_annotation(error, self.max_error_chars)
                turn.error = error
            turn.datetime = stamp
            turn.status = TurnStatus.FINALIZED
            chat.datetime = stamp
            try:
                self._persist(chat)
            except PersistenceFailure:
                turn.ai, turn.error, turn.datetime, chat.datetime = previous
                turn.status = TurnStatus.OPEN
                raise
            return True

    async def has_open_turn(self, chat_id: str) -> bool:
        chat = self._chats.get(chat_id)
        return chat is not None and chat.open_turn_index is not None

    # =========================================================================
    # Plain CRUD
    # =========================================================================

    async def list(self, limit: int = 100) -> list[ChatSummary]:
        chats = sorted(self._chats.values(), key=lambda c: c.datetime, reverse=True)
        return [c.summary() for c in chats[:limit]]

    async def count(self) -> int:
        return len(self._chats)

    async def get(self, chat_id: str) -> Chat | None:
        chat = self._chats.get(chat_id)
        return self._copy(chat) if chat else None

    async def rename(self, chat_id: str, name: str) -> bool:
        async with self._lock:
            chat = self._chats.get(chat_id)
            if chat is None:
                return False
            previous, chat.name = chat.name, name
            try:
                self._persist(chat)
            except PersistenceFailure:
                chat.name = previous
                raise
            return True

    async def delete(self, chat_id: str) -> bool:
        async with self._lock:
            if self._chats.pop(chat_id, None) is None:
                return False
            path = self._chat_path(chat_id)
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Error deleting {path}: {e}")
            return True

    async def search(self, query: str, limit: int = 20) -> list[tuple[Chat, Turn]]:
        needle = query.lower().strip()
        if not needle:
            return []
        results: list[tuple[Chat, Turn]] = []
        for chat in sorted(self._chats.values(), key=lambda c: c.datetime, reverse=True):
            for turn in chat.messages:
                if needle in turn.user.lower() or needle in turn.ai.lower():
                    results.append((chat, turn))
                    break
            if len(results) >= limit:
                break
        return results


# =========================================================================
# Factory Function
# =========================================================================

_store_instance: FileChatStore | None = None


def get_chat_store(base_path: Path | None = None) -> FileChatStore:
    """Get or create the chat store singleton.

    Args:
        base_path: Optional custom storage path. Only used on first call;
            defaults to the configured data directory.
    """
    global _store_instance
    if _store_instance is None:
        from ollachat.config import get_settings

        settings = get_settings()
        _store_instance = FileChatStore(
            base_path or settings.resolved_data_dir(),
            max_error_chars=settings.max_error_chars,
        )
    return _store_instance


def reset_chat_store() -> None:
    """Reset the store singleton (for testing)."""
    global _store_instance
    _store_instance = None
