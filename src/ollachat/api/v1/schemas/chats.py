# Chat history schemas.
# Created: 2026-10-19

from __future__ import annotations

from pydantic import BaseModel, Field


class DocumentInfo(BaseModel):
    name: str
    text: str = ""


class TurnInfo(BaseModel):
    """One stored turn."""

    user: str
    ai: str = ""
    datetime: str = ""
    status: str = "finalized"
    image: str | None = None
    document: DocumentInfo | None = None
    error: str | None = None


class ChatInfo(BaseModel):
    """A full chat document."""

    id: str
    name: str = "Untitled"
    created_at: str = ""
    datetime: str = ""
    messages: list[TurnInfo] = []


class ChatSummaryInfo(BaseModel):
    id: str
    name: str = "Untitled"
    datetime: str = ""
    message_count: int = 0
    last_message: str = ""


class ChatListResponse(BaseModel):
    chats: list[ChatSummaryInfo]
    total: int


class ChatCreateRequest(BaseModel):
    """Create a chat from a completed first exchange (imports, fixtures)."""

    message: str = Field(..., min_length=1, max_length=200000)
    response: str = ""
    name: str | None = Field(None, max_length=200)


class ChatCreateResponse(BaseModel):
    id: str


class ChatRenameRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class ChatSearchResult(BaseModel):
    id: str
    name: str = "Untitled"
    match: str = ""
    match_role: str = ""
    datetime: str = ""


class ChatSearchResponse(BaseModel):
    chats: list[ChatSearchResult]
