# Chat exchange schemas.
# Created: 2026-10-19

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class WireMessage(BaseModel):
    """One history entry as the backend expects it."""

    role: Literal["system", "user", "assistant"]
    content: str = Field("", max_length=200000)
    images: list[str] | None = None


class DocumentUpload(BaseModel):
    """A document attached to the new user turn."""

    name: str = Field(..., min_length=1, max_length=255)
    data: str = Field(..., min_length=1, description="base64 payload or data URI")


class ChatRequest(BaseModel):
    """Send the full history, ending with the new user message."""

    # Empty model or messages is a 400 from the exchange service, not a 422
    model: str = ""
    messages: list[WireMessage] = Field(default_factory=list)
    chat_id: str | None = Field(None, alias="chatId")
    document: DocumentUpload | None = None

    model_config = {"populate_by_name": True}


class StopResponse(BaseModel):
    status: str = "ok"
    chat_id: str
