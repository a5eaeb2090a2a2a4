# Client stream consumer for POST /api/v1/chat.
# Created: 2026-10-19
#
# Mirrors what the browser UI does with the NDJSON stream: adopt the
# X-Chat-ID header before reading the body, split the body into lines with
# its own buffer, append each fragment to the optimistic turn, and stop
# reading at the first done frame.

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

import httpx

from ollachat.client.session import ConversationSession
from ollachat.errors import MalformedStreamFrame, UpstreamError
from ollachat.exchange.framing import NDJSONLineBuffer, parse_event

logger = logging.getLogger(__name__)

CHAT_ID_HEADER = "X-Chat-ID"
STOPPED_NOTE = "[Generation stopped]"

UpdateCallback = Callable[[ConversationSession, int], None]


class ExchangeState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    ERRORED = "errored"


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if isinstance(data, dict) and data.get("detail"):
        return str(data["detail"])
    return f"HTTP {response.status_code}"


class ChatStreamConsumer:
    """Drives exchanges for one ConversationSession.

    Args:
        session: Conversation state to update.
        client: httpx client whose base_url points at the ollachat server.
        on_update: Called with ``(session, turn_index)`` after each fragment.
        api_prefix: Path prefix of the v1 API.
    """

    def __init__(
        self,
        session: ConversationSession,
        client: httpx.AsyncClient,
        on_update: UpdateCallback | None = None,
        api_prefix: str = "/api/v1",
    ):
        self.session = session
        self.client = client
        self.on_update = on_update
        self.api_prefix = api_prefix.rstrip("/")
        self.state = ExchangeState.IDLE
        self.last_error: str | None = None
        self._task: asyncio.Task | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    # -- exchanges --

    async def send(
        self,
        text: str,
        image: str | None = None,
        document: tuple[str, bytes] | None = None,
    ) -> asyncio.Task:
        """Start an exchange for a new prompt and return its task.

        Any exchange still running is stopped and awaited first, so the
        server never sees two requests for the same chat from this client.
        """
        await self.stop()

        index = self.session.append_turn(
            text, image=image, document_name=document[0] if document else None
        )
        payload: dict[str, Any] = {
            "model": self.session.model,
            "messages": self.session.to_messages(),
        }
        if self.session.chat_id:
            payload["chat_id"] = self.session.chat_id
        if document is not None:
            name, raw = document
            payload["document"] = {"name": name, "data": base64.b64encode(raw).decode("ascii")}

        self.last_error = None
        self.state = ExchangeState.SENDING
        self._task = asyncio.create_task(self._run(index, payload))
        return self._task

    async def _run(self, index: int, payload: dict[str, Any]) -> None:
        try:
            async with self.client.stream(
                "POST", f"{self.api_prefix}/chat", json=payload
            ) as response:
                if not response.is_success:
                    await response.aread()
                    self._fail(index, _error_detail(response))
                    return

                chat_id = response.headers.get(CHAT_ID_HEADER)
                if chat_id and self.session.adopt_chat_id(chat_id):
                    logger.debug("Adopted chat id %s", chat_id)
                self.state = ExchangeState.STREAMING

                buffer = NDJSONLineBuffer()
                done = False
                async for chunk in response.aiter_bytes():
                    for line in buffer.feed(chunk):
                        if self._apply(index, line):
                            done = True
                            break
                    if done:
                        break
                if not done:
                    for line in buffer.flush():
                        self._apply(index, line)
            self.state = ExchangeState.COMPLETED
        except asyncio.CancelledError:
            self.session.annotate(index, STOPPED_NOTE)
            self.state = ExchangeState.ABORTED
            raise
        except (MalformedStreamFrame, UpstreamError) as e:
            self._fail(index, str(e))
        except httpx.HTTPError as e:
            self._fail(index, str(e) or e.__class__.__name__)

    def _apply(self, index: int, line: str) -> bool:
        """Apply one line; True once the done frame has been seen."""
        event = parse_event(line)
        if event.content:
            self.session.apply_fragment(index, event.content)
            if self.on_update is not None:
                self.on_update(self.session, index)
        return event.done

    def _fail(self, index: int, detail: str) -> None:
        logger.warning("Exchange failed: %s", detail)
        self.last_error = detail
        self.session.annotate(index, f"Error: {detail}")
        self.state = ExchangeState.ERRORED

    async def wait(self) -> ExchangeState:
        """Wait for the current exchange to end and return its final state."""
        if self._task is not None:
            await asyncio.wait([self._task])
        return self.state

    async def stop(self) -> None:
        """Stop the running exchange, keeping the partial response."""
        if not self.active:
            return
        self._task.cancel()
        await asyncio.wait([self._task])

    # -- history and catalog --

    async def list_chats(self, limit: int = 100) -> list[dict[str, Any]]:
        response = await self.client.get(f"{self.api_prefix}/chats", params={"limit": limit})
        response.raise_for_status()
        return response.json()["chats"]

    async def load_chat(self, chat_id: str | None = None) -> dict[str, Any]:
        """Fetch a stored chat and reconcile it into the session."""
        chat_id = chat_id or self.session.chat_id
        if not chat_id:
            raise ValueError("No chat id to load")
        response = await self.client.get(f"{self.api_prefix}/chats/{chat_id}")
        response.raise_for_status()
        chat = response.json()
        self.session.reconcile(chat)
        return chat

    async def list_models(self) -> list[str]:
        response = await self.client.get(f"{self.api_prefix}/models")
        if not response.is_success:
            raise UpstreamError(_error_detail(response))
        return response.json()["models"]
