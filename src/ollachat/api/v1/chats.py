# Chats router: list, create, get, rename, delete, search, export.
# Created: 2026-10-19

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from ollachat.api.deps import get_store
from ollachat.api.v1.schemas.chats import (
    ChatCreateRequest,
    ChatCreateResponse,
    ChatInfo,
    ChatListResponse,
    ChatRenameRequest,
    ChatSearchResponse,
    ChatSearchResult,
)
from ollachat.api.v1.schemas.common import StatusResponse
from ollachat.store.file_store import FileChatStore
from ollachat.store.models import Turn

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chats"])


@router.get("/chats", response_model=ChatListResponse)
async def list_chats(
    limit: int = Query(100, ge=1, le=1000), store: FileChatStore = Depends(get_store)
):
    """List chats, most recently active first."""
    summaries = await store.list(limit=limit)
    return {"chats": [s.to_dict() for s in summaries], "total": await store.count()}


@router.post("/chats", response_model=ChatCreateResponse, status_code=201)
async def create_chat(body: ChatCreateRequest, store: FileChatStore = Depends(get_store)):
    """Create a chat holding one completed exchange."""
    chat_id = await store.create(Turn(user=body.message), name=body.name)
    await store.finalize_open_turn(chat_id, body.response, turn_index=0)
    return ChatCreateResponse(id=chat_id)


@router.get("/chats/search", response_model=ChatSearchResponse)
async def search_chats(
    q: str = Query(""),
    limit: int = Query(20, ge=1, le=200),
    store: FileChatStore = Depends(get_store),
):
    """Search chats by message content."""
    if not q.strip():
        return ChatSearchResponse(chats=[])

    needle = q.lower().strip()
    results: list[ChatSearchResult] = []
    for chat, turn in await store.search(q, limit=limit):
        in_user = needle in turn.user.lower()
        results.append(
            ChatSearchResult(
                id=chat.id,
                name=chat.name,
                match=(turn.user if in_user else turn.ai)[:200],
                match_role="user" if in_user else "assistant",
                datetime=chat.datetime,
            )
        )
    return ChatSearchResponse(chats=results)


@router.get("/chats/{chat_id}", response_model=ChatInfo)
async def get_chat(chat_id: str, store: FileChatStore = Depends(get_store)):
    chat = await store.get(chat_id)
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat.to_dict()


@router.post("/chats/{chat_id}/name", response_model=StatusResponse)
async def rename_chat(
    chat_id: str, body: ChatRenameRequest, store: FileChatStore = Depends(get_store)
):
    """Rename a chat."""
    if not await store.rename(chat_id, body.name):
        raise HTTPException(status_code=404, detail="Chat not found")
    return StatusResponse()


@router.delete("/chats/{chat_id}", response_model=StatusResponse)
async def delete_chat(chat_id: str, store: FileChatStore = Depends(get_store)):
    """Delete a chat by ID."""
    if not await store.delete(chat_id):
        raise HTTPException(status_code=404, detail="Chat not found")
    return StatusResponse()


@router.get("/chats/{chat_id}/export")
async def export_chat(
    chat_id: str, format: str = Query("json"), store: FileChatStore = Depends(get_store)
):
    """Export a chat as downloadable JSON or Markdown."""
    if format not in ("json", "md"):
        raise HTTPException(status_code=400, detail="Format must be 'json' or 'md'")

    chat = await store.get(chat_id)
    if chat is None:
        raise HTTPException(status_code=404, detail=f"Chat not found: {chat_id}")

    if format == "json":
        content = json.dumps(
            {
                "export_version": "1.0",
                "exported_at": datetime.now(UTC).isoformat(),
                "chat": chat.to_dict(),
            },
            indent=2,
            ensure_ascii=False,
        )
        media_type = "application/json"
        ext = "json"
    else:
        now = datetime.now(UTC).strftime("%Y-%m-%d %H:%M")
        lines = [
            f"# {chat.name}",
            f"**Chat**: `{chat.id}` | **Turns**: {len(chat.messages)} | **Exported**: {now}",
            "",
            "---",
        ]
        for turn in chat.messages:
            lines.append("")
            lines.append(f"**User** ({turn.datetime[:16].replace('T', ' ')}):")
            lines.append(turn.user)
            if turn.document is not None:
                lines.append(f"_Attached: {turn.document.name}_")
            lines.append("")
            lines.append("**Assistant**:")
            lines.append(turn.ai if turn.ai else "_(no response)_")
            lines.append("")
            lines.append("---")
        content = "\n".join(lines)
        media_type = "text/markdown"
        ext = "md"

    filename = f"ollachat-{chat_id[:20]}.{ext}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
