"""Mailbox export reader.

Loads messages saved from the Gmail API (``format=full``) as a JSON file and
converts them into RawMessage objects for the core pipeline. Fetching mail
is left to whatever produced the export.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional

from passbook.core.models import MessagePart, RawMessage

LOGGER = logging.getLogger(__name__)


def _header(payload: Mapping[str, Any], name: str) -> str:
    for header in payload.get("headers", []) or []:
        if str(header.get("name", "")).lower() == name.lower():
            return str(header.get("value", ""))
    return ""


def part_from_payload(payload: Optional[Mapping[str, Any]]) -> Optional[MessagePart]:
    """Convert a Gmail payload dict into a MessagePart tree."""

    if not payload:
        return None
    body = payload.get("body") or {}
    children = tuple(
        part for part in (part_from_payload(child) for child in payload.get("parts", []) or []) if part is not None
    )
    return MessagePart(
        mime_type=str(payload.get("mimeType") or ""),
        data=body.get("data"),
        parts=children,
    )


def _received_at(raw: Mapping[str, Any]) -> datetime:
    internal_date = raw.get("internalDate")
    if internal_date is None:
        return datetime.now()
    return datetime.fromtimestamp(int(internal_date) / 1000)


def message_from_api(raw: Mapping[str, Any]) -> RawMessage:
    """Convert one Gmail API message dict into a RawMessage."""

    source_id = raw.get("id")
    if not source_id:
        raise ValueError("Mailbox message is missing its id")
    payload = raw.get("payload") or {}
    return RawMessage(
        source_id=str(source_id),
        thread_id=raw.get("threadId"),
        received_at=_received_at(raw),
        body=part_from_payload(payload),
        subject=_header(payload, "Subject"),
        sender=_header(payload, "From"),
    )


class MailboxExportReader:
    """Reads RawMessages from a JSON mailbox export."""

    def __init__(self, export_path: str) -> None:
        self._export_path = Path(export_path)

    def _load(self) -> List[Dict[str, Any]]:
        if not self._export_path.exists():
            raise FileNotFoundError(f"Mailbox export not found at {self._export_path}")
        with self._export_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
        if isinstance(data, dict):
            data = data.get("messages", [])
        if not isinstance(data, list):
            raise ValueError("Mailbox export must be a list of messages or {\"messages\": [...]}")
        return data

    def messages(self) -> Iterator[RawMessage]:
        """Yield messages in export order, skipping entries that cannot be read."""

        for index, raw in enumerate(self._load()):
            try:
                yield message_from_api(raw)
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Skipping mailbox entry %s: %s", index, exc)
