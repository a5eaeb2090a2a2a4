"""Chat exchange orchestration.

One exchange = one user turn streamed through the backend:

    validate -> open backend stream -> open turn in store -> relay frames
             -> finalize once -> close

The backend stream is opened before the turn is written so that backend
failures (unreachable, unknown model) leave no chat record behind. The turn
is written before the first frame is relayed, so the chat id can go out in
the response headers.

Each ChatExchange runs its relay in a pump task that fills a queue; the HTTP
response drains the queue. The response side calls ``disconnect()`` when
the client goes away, the stop endpoint calls ``stop()``, and the pump
finalizes on its own when the relay ends. The finalizer latch picks one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from ollachat.attachments import (
    decode_document,
    document_prompt,
    extract_document_text,
    image_data_uri,
)
from ollachat.config import Settings
from ollachat.errors import (
    ChatNotFound,
    GatewayError,
    MalformedStreamFrame,
    TurnInFlight,
    ValidationError,
)
from ollachat.exchange.finalizer import CompletionFinalizer, FinalizeReason
from ollachat.exchange.relay import StreamRelay
from ollachat.llm.gateway import OllamaGateway, TokenStream
from ollachat.llm.messages import prepare_backend_messages
from ollachat.store.models import DocumentAttachment, Turn
from ollachat.store.protocol import ChatStoreProtocol

logger = logging.getLogger(__name__)

_END = object()


@dataclass
class ChatExchangeRequest:
    """Everything one exchange needs, already decoded from the HTTP body."""

    model: str
    messages: list[dict[str, Any]]
    chat_id: str | None = None
    document_name: str | None = None
    document_data: str | None = None  # base64 or data URI


@dataclass
class _PreparedTurn:
    turn: Turn
    backend_messages: list[dict[str, Any]] = field(default_factory=list)


class ChatExchange:
    """A running exchange: relay pump, frame queue, finalizer.

    At most ``max_pending`` frames wait in the queue; past that the pump
    stops pulling from the backend until the client reads.
    """

    def __init__(
        self,
        chat_id: str,
        created: bool,
        stream: TokenStream,
        finalizer: CompletionFinalizer,
        relay: StreamRelay,
        registry: ActiveExchanges | None = None,
        max_pending: int = 64,
    ):
        self.chat_id = chat_id
        self.created = created
        self.finalizer = finalizer
        self.relay = relay
        self._stream = stream
        self._registry = registry
        self._queue: asyncio.Queue = asyncio.Queue()
        self._slots = asyncio.Semaphore(max_pending)
        self._task: asyncio.Task | None = None
        self._relaying = False

    @property
    def turn_index(self) -> int:
        return self.finalizer.turn_index

    @property
    def text(self) -> str:
        return self.relay.text

    def start(self) -> None:
        if self._task is None:
            self._relaying = True
            self._task = asyncio.create_task(self._pump(), name=f"exchange:{self.chat_id}")

    async def _pump(self) -> None:
        reason, error = FinalizeReason.COMPLETED, None
        try:
            async for frame in self.relay:
                await self._slots.acquire()
                self._queue.put_nowait(frame)
            if not self.relay.done:
                logger.warning("Backend stream for chat %s ended without done flag", self.chat_id)
        except asyncio.CancelledError:
            # disconnect()/stop() already finalized with their own reason
            reason = FinalizeReason.CLIENT_DISCONNECTED
        except MalformedStreamFrame as e:
            reason, error = FinalizeReason.MALFORMED_FRAME, str(e)
        except GatewayError as e:
            logger.error("Backend stream error for chat %s: %s", self.chat_id, e)
            reason, error = FinalizeReason.UPSTREAM_ERROR, str(e)
        except Exception as e:
            logger.exception("Relay failed for chat %s", self.chat_id)
            reason, error = FinalizeReason.UPSTREAM_ERROR, str(e) or e.__class__.__name__
        finally:
            self._relaying = False
            self.finalizer.finalize(reason, error)
            try:
                await self._stream.aclose()
            except Exception:
                logger.debug("Error closing backend stream", exc_info=True)
            finally:
                self._queue.put_nowait(_END)
                if self._registry is not None:
                    self._registry.release(self)

    async def frames(self) -> AsyncIterator[bytes]:
        """Relayed frames in arrival order; ends once the turn is persisted."""
        self.start()
        while True:
            item = await self._queue.get()
            if item is _END:
                break
            self._slots.release()
            yield item
        await self.finalizer.wait()

    def _terminate(self, reason: FinalizeReason) -> None:
        self.finalizer.finalize(reason)
        if self._task is None:
            # Never started: nobody else will close the backend stream
            self._queue.put_nowait(_END)
            asyncio.ensure_future(self._stream.aclose())
            if self._registry is not None:
                self._registry.release(self)
        elif self._relaying and not self._task.done():
            self._task.cancel()

    def disconnect(self) -> None:
        """The client connection closed. Safe to call after completion."""
        if not self.finalizer.is_finalized:
            logger.info("Client disconnected from chat %s mid-stream", self.chat_id)
        self._terminate(FinalizeReason.CLIENT_DISCONNECTED)

    def stop(self) -> None:
        """User asked to stop generating."""
        self._terminate(FinalizeReason.STOPPED)

    async def wait_closed(self) -> None:
        """Wait until the pump has exited and the turn is persisted."""
        if self._task is not None:
            await asyncio.wait([self._task])
        await self.finalizer.wait()


class ActiveExchanges:
    """chat_id -> running exchange."""

    def __init__(self) -> None:
        self._active: dict[str, ChatExchange] = {}

    def get(self, chat_id: str) -> ChatExchange | None:
        return self._active.get(chat_id)

    def register(self, exchange: ChatExchange) -> None:
        self._active[exchange.chat_id] = exchange

    def release(self, exchange: ChatExchange) -> None:
        if self._active.get(exchange.chat_id) is exchange:
            del self._active[exchange.chat_id]

    def __contains__(self, chat_id: str) -> bool:
        return chat_id in self._active

    def __len__(self) -> int:
        return len(self._active)


class ChatExchangeService:
    """Opens exchanges against a store and a gateway."""

    def __init__(
        self,
        store: ChatStoreProtocol,
        gateway: OllamaGateway,
        settings: Settings,
        registry: ActiveExchanges | None = None,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings
        self.registry = registry if registry is not None else ActiveExchanges()

    # -- request preparation --

    @staticmethod
    def validate(request: ChatExchangeRequest) -> dict[str, Any]:
        """Return the trailing user message or raise ValidationError."""
        if not request.model or not request.model.strip():
            raise ValidationError("Model and messages required")
        if not request.messages:
            raise ValidationError("Model and messages required")
        last = request.messages[-1]
        if last.get("role") != "user" or not (last.get("content") or "").strip():
            raise ValidationError("Last message must be a user message with content.")
        return last

    def _prepare(self, request: ChatExchangeRequest) -> _PreparedTurn:
        last = self.validate(request)
        images = last.get("images") or []
        turn = Turn(user=last["content"], image=image_data_uri(images[0]) if images else None)

        document_block = ""
        if request.document_data:
            name = request.document_name or "document"
            text = extract_document_text(name, decode_document(request.document_data))
            turn.document = DocumentAttachment(
                name=name, text=text[: self.settings.document_store_chars]
            )
            document_block = document_prompt(name, text, self.settings.document_prompt_chars)

        return _PreparedTurn(
            turn=turn,
            backend_messages=prepare_backend_messages(request.messages, document_block),
        )

    async def _await_previous(self, chat_id: str) -> None:
        """Give a just-cancelled exchange on the same chat time to persist."""
        previous = self.registry.get(chat_id)
        if previous is not None:
            try:
                await asyncio.wait_for(
                    asyncio.shield(previous.wait_closed()), self.settings.open_turn_wait
                )
            except TimeoutError:
                raise TurnInFlight(
                    f"Chat {chat_id} already has a response in progress"
                ) from None
        if await self.store.has_open_turn(chat_id):
            raise TurnInFlight(f"Chat {chat_id} already has a response in progress")

    async def _open_turn(self, chat_id: str | None, turn: Turn) -> tuple[str, int, bool]:
        if chat_id:
            try:
                index = await self.store.append_open_turn(chat_id, turn)
                return chat_id, index, False
            except ChatNotFound:
                logger.warning("Chat %s not found, starting a new chat", chat_id)
        new_id = await self.store.create(turn)
        return new_id, 0, True

    # -- entry point --

    async def open(self, request: ChatExchangeRequest) -> ChatExchange:
        """Open an exchange. Every error raised here happens before streaming."""
        prepared = self._prepare(request)

        chat_id = request.chat_id or None
        if chat_id and await self.store.get(chat_id) is None:
            logger.warning("Chat %s not found, starting a new chat", chat_id)
            chat_id = None
        if chat_id:
            await self._await_previous(chat_id)

        stream = await self.gateway.stream_chat(request.model, prepared.backend_messages)
        try:
            chat_id, index, created = await self._open_turn(chat_id, prepared.turn)
        except BaseException:
            await stream.aclose()
            raise

        relay = StreamRelay(stream.chunks())
        finalizer = CompletionFinalizer(self.store, chat_id, index, lambda: relay.text)
        exchange = ChatExchange(
            chat_id,
            created,
            stream,
            finalizer,
            relay,
            self.registry,
            max_pending=self.settings.max_pending_frames,
        )
        self.registry.register(exchange)
        exchange.start()
        logger.info(
            "Exchange opened: chat %s turn %d model %s%s",
            chat_id,
            index,
            request.model,
            " (new chat)" if created else "",
        )
        return exchange


# =========================================================================
# Factory Function
# =========================================================================

_service_instance: ChatExchangeService | None = None


def get_exchange_service() -> ChatExchangeService:
    """Get or create the exchange service from the store/gateway singletons."""
    global _service_instance
    if _service_instance is None:
        from ollachat.config import get_settings
        from ollachat.llm.gateway import get_gateway
        from ollachat.store import get_chat_store

        _service_instance = ChatExchangeService(get_chat_store(), get_gateway(), get_settings())
    return _service_instance


def reset_exchange_service() -> None:
    """Reset the service singleton (for testing)."""
    global _service_instance
    _service_instance = None
