"""OpenAI-compatible chat completions oracle adapter.

Talks to any server exposing ``/v1/chat/completions`` (a local model server
or a hosted API) and returns the assistant message text.
"""

from __future__ import annotations

import json
import logging
import socket
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

from passbook.core.enrichment import OracleResponseError, OracleUnavailableError

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a financial data extraction expert.
Extract structured transaction details from raw bank/credit card email text.

Always respond with valid JSON only. The JSON must match this schema:

{
  "amount": 0.0,
  "description": "...",
  "type": "DEBIT | CREDIT",
  "account": "...",
  "currency": "...",
  "category": "..."
}

Rules:
- Amount must be numeric (no commas, no currency symbols).
- "description" holds the merchant or beneficiary name followed by any UPI/reference/transaction ids.
- "account" should carry as much detail as possible, including card or account numbers.
- If a value is missing, set it to "Unknown".
"""


class OpenAICompatibleOracle:
    """OraclePort implementation backed by a chat completions endpoint."""

    def __init__(
        self,
        host: str,
        model: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        self._host = host.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._timeout = timeout

    def _endpoint(self) -> str:
        return f"{self._host}/v1/chat/completions"

    def _payload(self, text: str) -> Dict[str, Any]:
        return {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
        }

    def complete(self, text: str) -> str:
        """Send normalized text and return the assistant reply content."""

        data = json.dumps(self._payload(text)).encode("utf-8")
        request = urllib.request.Request(self._endpoint(), data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        if self._api_key:
            request.add_header("Authorization", f"Bearer {self._api_key}")

        # Blocking call; the processor handles one message at a time.
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                body = response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")
            raise OracleUnavailableError(f"Oracle HTTP error {e.code}: {detail}") from e
        except (urllib.error.URLError, socket.timeout, ConnectionError) as e:
            raise OracleUnavailableError(f"Oracle unreachable at {self._host}: {e}") from e

        LOGGER.debug("Oracle raw response: %s", body)
        return extract_message_content(body)


def extract_message_content(body: str) -> str:
    """Return ``choices[0].message.content`` from a chat completions response."""

    try:
        root = json.loads(body)
        content = root["choices"][0]["message"]["content"]
    except (json.JSONDecodeError, KeyError, IndexError, TypeError) as exc:
        raise OracleResponseError(f"Unexpected chat completions response: {exc}") from exc

    # Some servers return the object itself rather than a JSON string.
    if isinstance(content, (dict, list)):
        return json.dumps(content)
    if not isinstance(content, str):
        raise OracleResponseError("Chat completions content is not text")
    return content
