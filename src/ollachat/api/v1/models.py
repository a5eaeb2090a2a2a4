# Models router: installed model catalog.
# Created: 2026-10-19

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ollachat.api.deps import error_response, get_backend
from ollachat.api.v1.schemas.common import ErrorResponse
from ollachat.api.v1.schemas.models import ModelListResponse
from ollachat.errors import GatewayError
from ollachat.llm.gateway import OllamaGateway

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Models"])


@router.get(
    "/models",
    response_model=ModelListResponse,
    responses={502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def list_models(gateway: OllamaGateway = Depends(get_backend)):
    """Names of the models installed on the inference backend."""
    try:
        names = await gateway.list_models()
    except GatewayError as e:
        logger.warning("Model list unavailable: %s", e)
        return error_response(e)
    return ModelListResponse(models=names)
