# Chat router: streamed exchange and stop.
# Created: 2026-10-19
#
# POST /chat relays the backend's NDJSON lines as they arrive. The chat id
# goes out in the X-Chat-ID header, before any body byte. Errors raised
# before streaming become a JSON {detail, code} body; after that the stream
# just ends and the error is recorded on the stored turn.

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ollachat.api.deps import error_response, get_service
from ollachat.api.v1.schemas.chat import ChatRequest, StopResponse
from ollachat.api.v1.schemas.common import ErrorResponse
from ollachat.errors import ChatError
from ollachat.exchange.service import ChatExchangeRequest, ChatExchangeService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat"])

CHAT_ID_HEADER = "X-Chat-ID"
NDJSON_MEDIA_TYPE = "application/x-ndjson"


@router.post(
    "/chat",
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def chat(body: ChatRequest, service: ChatExchangeService = Depends(get_service)):
    """Send the history plus a new user message; stream the reply back."""
    request = ChatExchangeRequest(
        model=body.model,
        messages=[m.model_dump(exclude_none=True) for m in body.messages],
        chat_id=body.chat_id,
        document_name=body.document.name if body.document else None,
        document_data=body.document.data if body.document else None,
    )
    try:
        exchange = await service.open(request)
    except ChatError as e:
        logger.warning("Chat request rejected (%s): %s", e.code, e)
        return error_response(e)

    async def _body():
        try:
            async for frame in exchange.frames():
                yield frame
        finally:
            # No-op once the turn has completed
            exchange.disconnect()

    return StreamingResponse(
        _body(),
        media_type=NDJSON_MEDIA_TYPE,
        headers={
            CHAT_ID_HEADER: exchange.chat_id,
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/chat/stop", response_model=StopResponse)
async def chat_stop(chat_id: str = "", service: ChatExchangeService = Depends(get_service)):
    """Stop an in-flight response. The partial text is kept."""
    if not chat_id:
        raise HTTPException(status_code=400, detail="chat_id is required")

    exchange = service.registry.get(chat_id)
    if exchange is None:
        raise HTTPException(status_code=404, detail="No active stream for this chat")

    exchange.stop()
    await exchange.wait_closed()
    return StopResponse(chat_id=chat_id)
