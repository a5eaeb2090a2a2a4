# Attachment helpers - inline images and uploaded documents.
# Created: 2026-10-19
#
# Images travel to the backend as bare base64 and are stored as data URIs.
# Documents are decoded to text; the model sees a long excerpt, the chat
# record keeps a short one.

from __future__ import annotations

import base64
import binascii
import io
import logging
import re

from ollachat.errors import ValidationError

logger = logging.getLogger(__name__)

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(;[\w=-]+)*;base64,", re.IGNORECASE)

_IMAGE_SIGNATURES: list[tuple[bytes, str]] = [
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
]


def strip_data_uri(data: str) -> str:
    """Return the bare base64 payload of a data URI (or the input unchanged)."""
    return _DATA_URI_RE.sub("", data.strip(), count=1)


def sniff_image_mime(payload: str) -> str:
    """Guess an image MIME type from the first bytes of a base64 payload."""
    try:
        head = base64.b64decode(payload[:32] + "=" * (-len(payload[:32]) % 4))
    except (binascii.Error, ValueError):
        return "image/png"
    for signature, mime in _IMAGE_SIGNATURES:
        if head.startswith(signature):
            return mime
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


def image_data_uri(data: str) -> str:
    """Normalize an image (data URI or bare base64) to a data URI for storage."""
    if _DATA_URI_RE.match(data.strip()):
        return data.strip()
    return f"data:{sniff_image_mime(data)};base64,{data.strip()}"


def decode_document(data: str) -> bytes:
    try:
        return base64.b64decode(strip_data_uri(data), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Document is not valid base64: {e}") from e


def _extract_pdf_text(raw: bytes) -> str:
    import PyPDF2

    try:
        reader = PyPDF2.PdfReader(io.BytesIO(raw))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as e:  # PyPDF2 raises a wide range of parser errors
        raise ValidationError(f"Could not read PDF: {e}") from e
    return "\n".join(p.strip() for p in pages if p.strip())


def extract_document_text(name: str, raw: bytes) -> str:
    """Extract plain text from an uploaded document."""
    if raw.startswith(b"%PDF") or name.lower().endswith(".pdf"):
        return _extract_pdf_text(raw)
    if b"\x00" in raw[:1024]:
        raise ValidationError(f"Unsupported binary document: {name}")
    return raw.decode("utf-8", errors="replace")


def document_prompt(name: str, text: str, max_chars: int) -> str:
    """Render document text as a block appended to the user's prompt."""
    excerpt = text[:max_chars]
    if len(text) > max_chars:
        excerpt += "\n[... truncated]"
    return f"\n\n--- Document: {name} ---\n{excerpt}\n--- End of document ---"
