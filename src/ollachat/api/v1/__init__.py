# API v1 router aggregation.
# Created: 2026-10-19
#
# mount_v1_routers(app) registers all domain routers at /api/v1/.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Domain routers, imported lazily inside mount_v1_routers().
_V1_ROUTERS: list[tuple[str, str, str]] = [
    # (module_path, attr_name, tag)
    ("ollachat.api.v1.chat", "router", "Chat"),
    ("ollachat.api.v1.chats", "router", "Chats"),
    ("ollachat.api.v1.models", "router", "Models"),
    ("ollachat.api.v1.health", "router", "Health"),
]


def mount_v1_routers(app: FastAPI) -> None:
    """Mount all v1 domain routers on *app* at ``/api/v1``."""
    import importlib

    from fastapi import APIRouter

    for module_path, attr_name, tag in _V1_ROUTERS:
        mod = importlib.import_module(module_path)
        router: APIRouter = getattr(mod, attr_name)
        app.include_router(router, prefix="/api/v1")
        logger.debug("Mounted v1 router: %s (%s)", module_path, tag)
