"""Message body normalization (core domain).

Flattens a possibly multi-part, possibly HTML mail body into one cleaned text
string. Problems are reported through sentinel strings instead of exceptions
so the orchestrator can skip the message without treating it as a failure.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Optional, Union

from bs4 import BeautifulSoup

from passbook.core.models import MessagePart

LOGGER = logging.getLogger(__name__)

NULL_MESSAGE = "[Null message]"
NO_PAYLOAD = "[No payload]"
EMPTY_CONTENT = "[Empty content]"
EXTRACTION_ERROR = "[Error extracting message]"

SKIP_SENTINELS = frozenset({NULL_MESSAGE, NO_PAYLOAD, EMPTY_CONTENT, EXTRACTION_ERROR})

# Non-breaking and zero-width spaces; U+200B and U+FEFF are not matched by \s.
_INVISIBLE_SPACES = re.compile("[\u00a0\u2007\u202f\u200b\ufeff]")
_WHITESPACE = re.compile(r"\s+")


def is_skip_sentinel(text: Optional[str]) -> bool:
    """Return True when ``text`` means "skip this message"."""

    return not text or not text.strip() or text in SKIP_SENTINELS


def clean_text(text: Optional[str]) -> str:
    """Collapse every whitespace class to single ASCII spaces and trim."""

    if text is None:
        return ""
    return _WHITESPACE.sub(" ", _INVISIBLE_SPACES.sub(" ", text)).strip()


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return soup.get_text(separator=" ")


def decode_part_data(data: Optional[str]) -> Optional[str]:
    """Decode Gmail body data: base64url first, standard alphabet as fallback.

    Returns None for empty data and raises ValueError when neither alphabet
    decodes it.
    """

    if not data or not data.strip():
        return None

    padded = data.strip() + "=" * (-len(data.strip()) % 4)
    try:
        raw = base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as exc:
        LOGGER.debug("URL-safe base64 decode failed (%s), trying standard alphabet", exc)
        try:
            raw = base64.b64decode(padded, validate=True)
        except (binascii.Error, ValueError) as fallback_exc:
            raise ValueError("Could not decode message part data") from fallback_exc
    return raw.decode("utf-8", errors="replace")


def _text_from_part(part: Optional[MessagePart]) -> Optional[str]:
    if part is None:
        return None

    mime_type = (part.mime_type or "").lower()
    if mime_type == "text/plain" and part.data:
        return decode_part_data(part.data)
    if mime_type == "text/html" and part.data:
        html = decode_part_data(part.data)
        return html_to_text(html) if html is not None else None

    chunks = []
    for sub_part in part.parts:
        text = _text_from_part(sub_part)
        if text and text.strip():
            chunks.append(text)
    return "\n".join(chunks) if chunks else None


def normalize_body(body: Union[str, MessagePart, None], message_id: str = "") -> str:
    """Return the cleaned text of a message body, or a skip sentinel."""

    if body is None:
        LOGGER.warning("Null body for message %s", message_id or "<unknown>")
        return NULL_MESSAGE

    if isinstance(body, str):
        cleaned = clean_text(body)
        return cleaned or EMPTY_CONTENT

    if not body.mime_type and not body.data and not body.parts:
        LOGGER.warning("No payload in message %s", message_id or "<unknown>")
        return NO_PAYLOAD

    try:
        text = _text_from_part(body)
    except Exception:
        LOGGER.exception("Failed to extract text from message %s", message_id or "<unknown>")
        return EXTRACTION_ERROR

    cleaned = clean_text(text)
    if not cleaned:
        LOGGER.warning(
            "Extracted blank text from message %s (mime=%s, parts=%s)",
            message_id or "<unknown>",
            body.mime_type,
            len(body.parts),
        )
        return EMPTY_CONTENT

    LOGGER.debug("Extracted %s characters from message %s", len(cleaned), message_id or "<unknown>")
    return cleaned
