"""Chat history data models.

Created: 2026-10-19

A Chat is a named, ordered list of Turns. A Turn is one user prompt and the
model's reply to it. Serialized documents use the shape

    {id, name, created_at, datetime, messages: [{user, ai, datetime, status,
     image?, document?, error?}]}

Design notes:
- Dataclasses with to_dict/from_dict for JSON persistence
- IDs are uuid4 hex strings
- Timestamps are ISO 8601 UTC strings
"""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

DEFAULT_NAME_CHARS = 50


class TurnStatus(str, Enum):
    """Lifecycle of a turn's response field."""

    OPEN = "open"  # Response still streaming
    FINALIZED = "finalized"  # Response written, no further updates


def generate_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    """Get current UTC time as ISO 8601 string."""
    return datetime.now(UTC).isoformat()


def default_chat_name(user_text: str) -> str:
    return user_text.strip()[:DEFAULT_NAME_CHARS] or "Untitled"


def format_annotation(error: str, max_chars: int = 100) -> str:
    """Render an error annotation appended to a turn's response."""
    text = error if len(error) <= max_chars else error[:max_chars] + "..."
    return f"\n[Error: {text}]"


@dataclass
class DocumentAttachment:
    """A document attached to a turn; text is already truncated for storage."""

    name: str
    text: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "text": self.text}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DocumentAttachment":
        return cls(name=data.get("name", ""), text=data.get("text", ""))


@dataclass
class Turn:
    """One user prompt and the model's response to it.

    Attributes:
        user: The user's prompt text
        ai: The model's response (empty while the turn is open)
        datetime: Last update time of this turn
        status: Whether the response is still in flight
        image: Optional attached image as a data URI
        document: Optional attached document
        error: Error annotation recorded at finalization, if any
    """

    user: str
    ai: str = ""
    datetime: str = field(default_factory=now_iso)
    status: TurnStatus = TurnStatus.OPEN
    image: str | None = None
    document: DocumentAttachment | None = None
    error: str | None = None

    @property
    def is_open(self) -> bool:
        return self.status == TurnStatus.OPEN

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "user": self.user,
            "ai": self.ai,
            "datetime": self.datetime,
            "status": self.status.value,
        }
        if self.image is not None:
            data["image"] = self.image
        if self.document is not None:
            data["document"] = self.document.to_dict()
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Turn":
        document = data.get("document")
        return cls(
            user=data.get("user", ""),
            ai=data.get("ai", ""),
            datetime=data.get("datetime", now_iso()),
            # Records written before the status field existed are complete
            status=TurnStatus(data.get("status", TurnStatus.FINALIZED.value)),
            image=data.get("image"),
            document=DocumentAttachment.from_dict(document) if document else None,
            error=data.get("error"),
        )


@dataclass
class Chat:
    """A named conversation.

    Attributes:
        id: Unique identifier
        name: Display name
        created_at: Creation time
        datetime: Last activity time (bumped when a turn is opened or finalized)
        messages: Ordered turns
    """

    id: str = field(default_factory=generate_id)
    name: str = "Untitled"
    created_at: str = field(default_factory=now_iso)
    datetime: str = field(default_factory=now_iso)
    messages: list[Turn] = field(default_factory=list)

    @property
    def open_turn_index(self) -> int | None:
        """Index of the open turn, if any. Only the last turn can be open."""
        if self.messages and self.messages[-1].is_open:
            return len(self.messages) - 1
        return None

    def summary(self) -> "ChatSummary":
        last = self.messages[-1] if self.messages else None
        return ChatSummary(
            id=self.id,
            name=self.name,
            datetime=self.datetime,
            message_count=len(self.messages),
            last_message=last.user[:200] if last else "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "datetime": self.datetime,
            "messages": [t.to_dict() for t in self.messages],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chat":
        return cls(
            id=data.get("id") or generate_id(),
            name=data.get("name", "Untitled"),
            created_at=data.get("created_at", data.get("datetime", now_iso())),
            datetime=data.get("datetime", now_iso()),
            messages=[Turn.from_dict(m) for m in data.get("messages", [])],
        )


@dataclass
class ChatSummary:
    """Lightweight listing entry."""

    id: str
    name: str
    datetime: str
    message_count: int = 0
    last_message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "datetime": self.datetime,
            "message_count": self.message_count,
            "last_message": self.last_message,
        }
