"""Ollama gateway - streaming chat requests to the inference backend.

Speaks Ollama's /api/chat streaming protocol: the request carries
``{model, messages, stream: true}`` and the response body is newline
delimited JSON. The status line is checked before a TokenStream is handed
out, so backend failures surface before any byte reaches the client.

No retries: a failed request is reported and the user resends.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ollachat.errors import BackendUnreachable, ModelNotFound, UpstreamError

logger = logging.getLogger(__name__)


def _error_text(response: httpx.Response) -> str:
    """Pull the ``error`` field out of a backend error body."""
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return response.text.strip() or f"HTTP {response.status_code}"


class TokenStream:
    """An open streaming response from the backend.

    Iterate ``chunks()`` for raw bytes; ``aclose()`` drops the connection,
    which makes Ollama abandon the generation.
    """

    def __init__(self, response: httpx.Response, model: str):
        self._response = response
        self.model = model
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.HTTPError as e:
            if self._closed:
                return
            raise UpstreamError(f"Stream from backend failed: {e}") from e

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class OllamaGateway:
    """Async client for an Ollama-compatible server.

    Args:
        base_url: Server URL, e.g. ``http://localhost:11434``.
        connect_timeout: Seconds to wait for the TCP connection.
        read_timeout: Seconds to wait between chunks; None waits forever.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        *,
        connect_timeout: float = 10.0,
        read_timeout: float | None = 300.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def stream_chat(self, model: str, messages: list[dict[str, Any]]) -> TokenStream:
        """Open a streaming chat completion.

        Raises:
            BackendUnreachable: connection refused or timed out.
            ModelNotFound: backend answered 404 for the model.
            UpstreamError: any other non-success status.
        """
        client = self._get_client()
        request = client.build_request(
            "POST",
            "/api/chat",
            json={"model": model, "messages": messages, "stream": True},
        )
        try:
            response = await client.send(request, stream=True)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise BackendUnreachable(
                f"Cannot connect to Ollama at {self.base_url}: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Request to Ollama failed: {e}") from e

        if response.is_success:
            logger.debug("Opened stream for model %s (%d messages)", model, len(messages))
            return TokenStream(response, model)

        try:
            await response.aread()
        finally:
            await response.aclose()
        detail = _error_text(response)
        if response.status_code == 404:
            raise ModelNotFound(detail or f"Model '{model}' not found")
        raise UpstreamError(f"Ollama returned {response.status_code}: {detail}")

    async def list_models(self) -> list[str]:
        """Names of the models the backend has installed."""
        client = self._get_client()
        try:
            response = await client.get("/api/tags")
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            raise BackendUnreachable(
                f"Cannot connect to Ollama at {self.base_url}: {e}"
            ) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Request to Ollama failed: {e}") from e
        if not response.is_success:
            raise UpstreamError(f"Ollama returned {response.status_code}: {_error_text(response)}")
        data = response.json()
        return [m["name"] for m in data.get("models", []) if m.get("name")]

    async def ping(self) -> bool:
        """Check if the backend answers."""
        try:
            response = await self._get_client().get("/api/tags", timeout=2.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False


# =========================================================================
# Factory Function
# =========================================================================

_gateway_instance: OllamaGateway | None = None


def get_gateway() -> OllamaGateway:
    """Get or create the gateway singleton from settings."""
    global _gateway_instance
    if _gateway_instance is None:
        from ollachat.config import get_settings

        settings = get_settings()
        _gateway_instance = OllamaGateway(
            settings.ollama_host,
            connect_timeout=settings.connect_timeout,
            read_timeout=settings.request_timeout,
        )
    return _gateway_instance


def reset_gateway() -> None:
    """Reset the gateway singleton (for testing)."""
    global _gateway_instance
    _gateway_instance = None
