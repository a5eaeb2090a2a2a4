# Model catalog and health schemas.
# Created: 2026-10-19

from __future__ import annotations

from pydantic import BaseModel


class ModelListResponse(BaseModel):
    models: list[str]


class HealthResponse(BaseModel):
    status: str = "ok"
    backend: str = "unknown"
    ollama_host: str = ""
    active_exchanges: int = 0
