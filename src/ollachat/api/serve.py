"""API server for ``ollachat serve``.

Mounts the versioned ``/api/v1/`` routers with CORS. Browser front ends and
the Python client talk to the same endpoints.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app):
    from ollachat.config import get_settings
    from ollachat.store import get_chat_store

    settings = get_settings()
    store = get_chat_store()
    logger.info(
        "Serving %d chats from %s, backend %s",
        await store.count(),
        store.base_path,
        settings.ollama_host,
    )
    try:
        yield
    finally:
        from ollachat.llm.gateway import get_gateway

        await get_gateway().aclose()


def create_api_app(settings=None):
    """Build the FastAPI application."""
    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    from ollachat import __version__
    from ollachat.api.v1 import mount_v1_routers
    from ollachat.config import get_settings

    settings = settings or get_settings()

    app = FastAPI(
        title="ollachat API",
        description="Streaming chat over a local Ollama server, with saved history.",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    # --- CORS -----------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.api_cors_allowed_origins),
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
        # Browsers hide non-safelisted response headers unless exposed
        expose_headers=["X-Chat-ID"],
    )

    # --- Mount all /api/v1/ routers -------------------------------------
    mount_v1_routers(app)

    return app


def run_api_server(host: str | None = None, port: int | None = None, dev: bool = False) -> None:
    """Start the API server with uvicorn."""
    import uvicorn

    from ollachat.config import get_settings

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port

    logger.info("API docs: http://%s:%d/api/v1/docs", host, port)

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "ollachat.api.serve:create_api_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        app = create_api_app(settings)
        uvicorn.run(app, host=host, port=port, log_config=None)
