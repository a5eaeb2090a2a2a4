"""Chat history storage.

Usage:
    from ollachat.store import get_chat_store, Turn

    store = get_chat_store()
    chat_id = await store.create(Turn(user="hi"))
    await store.finalize_open_turn(chat_id, "Hello")
"""

from ollachat.store.file_store import FileChatStore, get_chat_store, reset_chat_store
from ollachat.store.models import (
    Chat,
    ChatSummary,
    DocumentAttachment,
    Turn,
    TurnStatus,
    default_chat_name,
    format_annotation,
    now_iso,
)
from ollachat.store.protocol import ChatStoreProtocol

__all__ = [
    # Models
    "Chat",
    "ChatSummary",
    "DocumentAttachment",
    "Turn",
    "TurnStatus",
    "default_chat_name",
    "format_annotation",
    "now_iso",
    # Store
    "ChatStoreProtocol",
    "FileChatStore",
    "get_chat_store",
    "reset_chat_store",
]
