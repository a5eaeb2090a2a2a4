# Health router.
# Created: 2026-10-19

from __future__ import annotations

from fastapi import APIRouter, Depends

from ollachat.api.deps import get_service
from ollachat.api.v1.schemas.models import HealthResponse
from ollachat.exchange.service import ChatExchangeService

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def get_health(service: ChatExchangeService = Depends(get_service)):
    """Server status plus whether the inference backend answers."""
    reachable = await service.gateway.ping()
    return HealthResponse(
        status="ok",
        backend="ok" if reachable else "unreachable",
        ollama_host=service.gateway.base_url,
        active_exchanges=len(service.registry),
    )
