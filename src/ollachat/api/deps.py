# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-19
#
# Routers never reach for the singletons directly so tests can swap them with
# app.dependency_overrides.

from __future__ import annotations

from fastapi.responses import JSONResponse

from ollachat.api.v1.schemas.common import ErrorResponse
from ollachat.errors import ChatError
from ollachat.exchange.service import ChatExchangeService, get_exchange_service
from ollachat.llm.gateway import OllamaGateway, get_gateway
from ollachat.store.file_store import FileChatStore, get_chat_store


def get_store() -> FileChatStore:
    return get_chat_store()


def get_backend() -> OllamaGateway:
    return get_gateway()


def get_service() -> ChatExchangeService:
    """The exchange service, which also owns the active-exchange registry."""
    return get_exchange_service()


def error_response(error: ChatError) -> JSONResponse:
    """Structured ``{detail, code}`` body for errors raised before streaming."""
    body = ErrorResponse(detail=str(error), code=error.code)
    return JSONResponse(status_code=error.status_code, content=body.model_dump())
