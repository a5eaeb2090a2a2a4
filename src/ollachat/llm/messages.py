"""Backend message projection.

Turns are stored as ``{user, ai}`` pairs; the backend wants a flat
``[{role, content, images?}]`` list. These helpers build that list fresh for
every request and never persist it.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ollachat.attachments import strip_data_uri


def wire_message(role: str, content: str, images: Iterable[str] | None = None) -> dict[str, Any]:
    message: dict[str, Any] = {"role": role, "content": content}
    payloads = [strip_data_uri(i) for i in images or () if i]
    if payloads:
        message["images"] = payloads
    return message


def turns_to_messages(turns: Iterable[Any]) -> list[dict[str, Any]]:
    """Flatten turn-like objects (``user``, ``ai``, optional ``image``).

    A turn with an empty response contributes only its user message, so the
    trailing in-flight turn becomes the final user message.
    """
    messages: list[dict[str, Any]] = []
    for turn in turns:
        image = getattr(turn, "image", None)
        messages.append(wire_message("user", turn.user, [image] if image else None))
        if turn.ai:
            messages.append(wire_message("assistant", turn.ai))
    return messages


def prepare_backend_messages(
    messages: list[dict[str, Any]], document_block: str = ""
) -> list[dict[str, Any]]:
    """Normalize request messages for the backend.

    Strips data-URI prefixes from images and appends ``document_block`` to the
    last user message. The input list is not modified.
    """
    prepared = [
        wire_message(m["role"], m.get("content") or "", m.get("images")) for m in messages
    ]
    if document_block and prepared:
        prepared[-1]["content"] += document_block
    return prepared
