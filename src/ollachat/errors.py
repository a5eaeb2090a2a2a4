# Error taxonomy shared by the store, the gateway, the exchange and the API.
# Created: 2026-10-19
#
# Every error that can be reported before the first body byte carries the
# HTTP status and machine code used in the structured error response.

from __future__ import annotations


class ChatError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def __str__(self) -> str:
        return self.message


class ValidationError(ChatError):
    """Request is missing a model, messages, or a trailing user message."""

    status_code = 400
    code = "validation_error"


class GatewayError(ChatError):
    """Inference backend failure."""

    status_code = 502
    code = "upstream_error"


class BackendUnreachable(GatewayError):
    """The inference backend could not be contacted."""

    status_code = 503
    code = "backend_unreachable"


class ModelNotFound(GatewayError):
    """The backend reports that the requested model does not exist."""

    status_code = 404
    code = "model_not_found"


class UpstreamError(GatewayError):
    """Any other non-success response or read failure from the backend."""


class MalformedStreamFrame(ChatError):
    """A line of the token stream is not a JSON object."""

    status_code = 502
    code = "malformed_stream_frame"

    def __init__(self, line: str, reason: str = "") -> None:
        preview = line if len(line) <= 80 else line[:80] + "..."
        super().__init__(f"Malformed stream frame: {preview!r}" + (f" ({reason})" if reason else ""))
        self.line = line


class ChatNotFound(ChatError):
    status_code = 404
    code = "chat_not_found"


class TurnInFlight(ChatError):
    """The chat already has an open turn."""

    status_code = 409
    code = "turn_in_flight"


class PersistenceFailure(ChatError):
    status_code = 500
    code = "persistence_failure"
