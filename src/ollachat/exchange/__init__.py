"""Streaming chat exchange pipeline.

    framing    NDJSON line buffering shared with the client
    relay      chunk stream -> frames + accumulated text
    finalizer  save-once latch for the open turn
    service    orchestration of one exchange per request
"""

from ollachat.exchange.finalizer import (
    CLIENT_DISCONNECTED_NOTE,
    STOPPED_NOTE,
    CompletionFinalizer,
    FinalizeReason,
    TurnState,
)
from ollachat.exchange.framing import NDJSONLineBuffer, StreamEvent, encode_event, parse_event
from ollachat.exchange.relay import StreamRelay
from ollachat.exchange.service import (
    ActiveExchanges,
    ChatExchange,
    ChatExchangeRequest,
    ChatExchangeService,
    get_exchange_service,
    reset_exchange_service,
)

__all__ = [
    "CLIENT_DISCONNECTED_NOTE",
    "STOPPED_NOTE",
    "CompletionFinalizer",
    "FinalizeReason",
    "TurnState",
    "NDJSONLineBuffer",
    "StreamEvent",
    "encode_event",
    "parse_event",
    "StreamRelay",
    "ActiveExchanges",
    "ChatExchange",
    "ChatExchangeRequest",
    "ChatExchangeService",
    "get_exchange_service",
    "reset_exchange_service",
]
