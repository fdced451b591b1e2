from __future__ import annotations

import base64
import json
from datetime import datetime

import pytest

from passbook.adapters.mailbox_export import MailboxExportReader, message_from_api, part_from_payload
from passbook.core.normalizer import normalize_body


def _b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _api_message(message_id: str = "18f1", thread_id: str = "18f0") -> dict:
    return {
        "id": message_id,
        "threadId": thread_id,
        "internalDate": "1761215458000",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "Subject", "value": "Transaction alert for your ICICI Bank Credit Card"},
                {"name": "From", "value": "ICICI Bank <credit_cards@icicibank.com>"},
            ],
            "body": {"size": 0},
            "parts": [
                {"mimeType": "text/plain", "body": {"data": _b64url("INR 738.00 spent. Info: AVENUE.")}},
                {"mimeType": "text/html", "body": {"data": _b64url("<p>html copy</p>")}},
            ],
        },
    }


def test_message_from_api_maps_headers_and_ids() -> None:
    message = message_from_api(_api_message())

    assert message.source_id == "18f1"
    assert message.thread_id == "18f0"
    assert message.subject == "Transaction alert for your ICICI Bank Credit Card"
    assert message.sender == "ICICI Bank <credit_cards@icicibank.com>"
    assert message.received_at == datetime.fromtimestamp(1761215458)
    assert normalize_body(message.body).startswith("INR 738.00 spent. Info: AVENUE.")


def test_part_tree_is_preserved() -> None:
    part = part_from_payload(_api_message()["payload"])
    assert part is not None
    assert part.mime_type == "multipart/alternative"
    assert [child.mime_type for child in part.parts] == ["text/plain", "text/html"]
    assert part_from_payload(None) is None


def test_reader_accepts_list_and_wrapped_exports(tmp_path) -> None:
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps([_api_message("a"), {"threadId": "no-id"}]), encoding="utf-8")
    wrapped = tmp_path / "wrapped.json"
    wrapped.write_text(json.dumps({"messages": [_api_message("b")]}), encoding="utf-8")

    assert [m.source_id for m in MailboxExportReader(str(as_list)).messages()] == ["a"]
    assert [m.source_id for m in MailboxExportReader(str(wrapped)).messages()] == ["b"]


def test_missing_export_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        list(MailboxExportReader(str(tmp_path / "missing.json")).messages())
