"""Client-side conversation state.

A ConversationSession is the client's view of one chat: the chat id once the
server has assigned one, the model in use, and the ordered turns. Turns are
appended optimistically before the server answers and filled in as
fragments arrive. Reconciling with a stored chat mutates the existing
LocalTurn objects so references held by a renderer stay valid.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ollachat.llm.messages import turns_to_messages


@dataclass
class LocalTurn:
    """One turn as the client shows it.

    Attributes:
        user: The prompt as typed
        ai: Response text received so far
        datetime: Server timestamp, empty until reconciled
        image: Optional image as a data URI
        document_name: Name of an attached document, if any
        note: Local annotation (stop/error), shown after the text
    """

    user: str
    ai: str = ""
    datetime: str = ""
    image: str | None = None
    document_name: str | None = None
    note: str | None = None

    @property
    def display_text(self) -> str:
        if not self.note:
            return self.ai
        return f"{self.ai}\n{self.note}" if self.ai else self.note


class ConversationSession:
    """Explicit per-conversation state, passed around instead of globals."""

    def __init__(
        self,
        model: str,
        chat_id: str | None = None,
        name: str | None = None,
    ):
        self.model = model
        self.chat_id = chat_id
        self.name = name
        self.turns: list[LocalTurn] = []

    def append_turn(
        self, user: str, image: str | None = None, document_name: str | None = None
    ) -> int:
        """Add the optimistic turn for a new prompt and return its index."""
        self.turns.append(LocalTurn(user=user, image=image, document_name=document_name))
        return len(self.turns) - 1

    def apply_fragment(self, index: int, text: str) -> None:
        self.turns[index].ai += text

    def annotate(self, index: int, note: str) -> None:
        self.turns[index].note = note

    def adopt_chat_id(self, chat_id: str) -> bool:
        """Take the server-assigned id. An id already set is never replaced."""
        if self.chat_id or not chat_id:
            return False
        self.chat_id = chat_id
        return True

    def reconcile(self, chat: dict[str, Any]) -> None:
        """Merge a stored chat into the local turns, matching by index."""
        if chat.get("id"):
            self.adopt_chat_id(chat["id"])
        self.name = chat.get("name", self.name)
        for i, data in enumerate(chat.get("messages", [])):
            if i < len(self.turns):
                turn = self.turns[i]
                turn.user = data.get("user", turn.user)
                turn.ai = data.get("ai", turn.ai)
                turn.datetime = data.get("datetime", turn.datetime)
                turn.image = data.get("image", turn.image)
                turn.note = None
            else:
                document = data.get("document") or {}
                self.turns.append(
                    LocalTurn(
                        user=data.get("user", ""),
                        ai=data.get("ai", ""),
                        datetime=data.get("datetime", ""),
                        image=data.get("image"),
                        document_name=document.get("name"),
                    )
                )

    def to_messages(self) -> list[dict[str, Any]]:
        """Backend messages for the whole history, in order."""
        return turns_to_messages(self.turns)
