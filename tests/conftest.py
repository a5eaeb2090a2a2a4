# Shared fixtures: a scripted Ollama server, a fake ollachat server for the
# client, a temp chat store, a wired service.
# Created: 2026-10-19

import asyncio
import json
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import pytest

from ollachat.config import Settings
from ollachat.exchange.service import ChatExchangeService
from ollachat.llm.gateway import OllamaGateway
from ollachat.store.file_store import FileChatStore


@dataclass
class Script:
    """What the fake backend does for one /api/chat request."""

    chunks: list[bytes] = field(default_factory=list)
    hang: bool = False  # keep the connection open after the last chunk
    status: int = 200
    error: str = "boom"


class FakeOllama:
    """Ollama stand-in behind httpx.MockTransport.

    Each /api/chat request consumes the next script; the last one repeats.
    """

    def __init__(self):
        self.models = ["llama3"]
        self.scripts: list[Script] = [Script()]
        self.requests: list[dict] = []
        self.release = asyncio.Event()
        self.unreachable = False

    def script(self, *chunks: bytes, hang: bool = False, status: int = 200, error: str = "boom"):
        self.scripts = [Script(list(chunks), hang=hang, status=status, error=error)]
        return self

    def then(self, *chunks: bytes, hang: bool = False):
        self.scripts.append(Script(list(chunks), hang=hang))
        return self

    async def _body(self, script: Script):
        for chunk in script.chunks:
            yield chunk
            await asyncio.sleep(0)
        if script.hang:
            await self.release.wait()

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if self.unreachable:
            raise httpx.ConnectError("Connection refused", request=request)
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": m} for m in self.models]})
        if request.url.path == "/api/chat":
            body = json.loads(request.content)
            self.requests.append(body)
            if body["model"] not in self.models:
                return httpx.Response(404, json={"error": f"model '{body['model']}' not found"})
            script = self.scripts.pop(0) if len(self.scripts) > 1 else self.scripts[0]
            if script.status != 200:
                return httpx.Response(script.status, json={"error": script.error})
            return httpx.Response(
                200,
                content=self._body(script),
                headers={"content-type": "application/x-ndjson"},
            )
        return httpx.Response(404, json={"error": "not found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def temp_store_path():
    """Create a temporary directory for test storage."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_store_path):
    return FileChatStore(temp_store_path)


@pytest.fixture
def fake_ollama():
    return FakeOllama()


@pytest.fixture
def gateway(fake_ollama):
    return OllamaGateway("http://ollama.test", transport=fake_ollama.transport())


@pytest.fixture
def settings(temp_store_path):
    return Settings(data_dir=temp_store_path, open_turn_wait=0.5)


@pytest.fixture
def service(store, gateway, settings):
    return ChatExchangeService(store, gateway, settings)


class FakeServer:
    """Plays the ollachat server for POST /api/v1/chat."""

    def __init__(self, chat_id="srv-1"):
        self.chat_id = chat_id
        self.bodies: list[bytes] = []  # one per request; the last repeats
        self.hang = False
        self.release = asyncio.Event()
        self.requests: list[dict] = []
        self.closed_streams = 0
        self.status = 200
        self.error = {"detail": "boom", "code": "upstream_error"}
        self.stored_chat: dict | None = None

    async def _stream(self, body: bytes, hang: bool):
        try:
            for i in range(0, len(body), 7):
                yield body[i : i + 7]
                await asyncio.sleep(0)
            if hang:
                await self.release.wait()
        finally:
            self.closed_streams += 1

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/v1/chat":
            payload = json.loads(request.content)
            self.requests.append(payload)
            if self.status != 200:
                return httpx.Response(self.status, json=self.error)
            body = self.bodies.pop(0) if len(self.bodies) > 1 else self.bodies[0]
            hang = self.hang and len(self.requests) == 1
            return httpx.Response(
                200,
                headers={"X-Chat-ID": payload.get("chat_id") or self.chat_id},
                content=self._stream(body, hang),
            )
        if path == "/api/v1/chats":
            summary = {
                "id": self.chat_id,
                "name": "Hello there",
                "message_count": 1,
                "datetime": "2026-10-19T09:30:00+00:00",
            }
            return httpx.Response(200, json={"chats": [summary], "total": 1})
        if path.startswith("/api/v1/chats/"):
            if self.stored_chat is None:
                return httpx.Response(404, json={"detail": "Chat not found"})
            return httpx.Response(200, json=self.stored_chat)
        if path == "/api/v1/models":
            return httpx.Response(200, json={"models": ["llama3"]})
        return httpx.Response(404)


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
async def http_client(server):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(server.handler), base_url="http://ollachat.test"
    ) as client:
        yield client

