"""Optional oracle enrichment (core domain).

The oracle is an opaque text-in, text-out service. Its reply is expected to
contain one JSON object, possibly wrapped in markdown fences or prose. Parsed
values only ever land in ``EnrichmentFields``; the deterministic fields of a
candidate are never touched here.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import json
import logging
from typing import Any, Dict, Optional, Sequence

from passbook.core.config import EnrichmentConfig
from passbook.core.matcher import AccountResolver
from passbook.core.models import AccountRosterEntry, CandidateTransaction, Direction, EnrichmentFields
from passbook.core.ports import OraclePort

LOGGER = logging.getLogger(__name__)


class OracleError(Exception):
    """Base class for enrichment oracle failures."""


class OracleUnavailableError(OracleError):
    """The oracle could not be reached or returned a transport error."""


class OracleResponseError(OracleError):
    """The oracle replied, but not with a usable JSON object."""


def extract_json_object(text: Optional[str]) -> Optional[str]:
    """Return the first balanced ``{...}`` block in ``text``.

    Braces inside JSON strings are ignored, so fenced replies and replies with
    leading or trailing prose both work.
    """

    if not text:
        return None

    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this brace; try the next one.
        start = text.find("{", start + 1)
    return None


def parse_oracle_response(text: Optional[str]) -> Dict[str, Any]:
    """Extract and decode the JSON object from an oracle reply."""

    block = extract_json_object(text)
    if block is None:
        raise OracleResponseError("Oracle reply contains no JSON object")
    try:
        payload = json.loads(block)
    except json.JSONDecodeError as exc:
        raise OracleResponseError(f"Oracle reply is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise OracleResponseError("Oracle reply JSON is not an object")
    return payload


def _text_value(payload: Dict[str, Any], key: str, unknown_marker: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == unknown_marker.lower():
        return None
    return text


def _amount_value(payload: Dict[str, Any]) -> Optional[Decimal]:
    value = payload.get("amount")
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).replace(",", "").strip())
    except InvalidOperation:
        LOGGER.warning("Invalid oracle amount: %r", value)
        return None
    return amount if amount.is_finite() else None


def build_enrichment_fields(
    payload: Dict[str, Any],
    account_ref: Optional[str],
    unknown_marker: str = "Unknown",
) -> EnrichmentFields:
    """Map a decoded oracle object onto EnrichmentFields."""

    raw_type = payload.get("type")
    direction = Direction.parse(str(raw_type)) if raw_type is not None else None
    if raw_type is not None and direction is None:
        LOGGER.warning("Invalid oracle type: %r", raw_type)

    return EnrichmentFields(
        amount=_amount_value(payload),
        description=_text_value(payload, "description", unknown_marker),
        direction=direction,
        account_ref=account_ref,
        currency=_text_value(payload, "currency", unknown_marker),
        category=_text_value(payload, "category", unknown_marker),
    )


class EnrichmentTrack:
    """Fills the enrichment fields of a candidate from the oracle."""

    def __init__(
        self,
        oracle: Optional[OraclePort],
        resolver: AccountResolver,
        config: EnrichmentConfig,
    ) -> None:
        self._oracle = oracle
        self._resolver = resolver
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.enabled and self._oracle is not None

    def _resolve_account(
        self,
        account_hint: Optional[str],
        candidate: CandidateTransaction,
        roster: Sequence[AccountRosterEntry],
    ) -> Optional[str]:
        if not account_hint:
            return None
        result = self._resolver.resolve(roster, account_hint, candidate.raw_text, candidate.description)
        if not result.valid or result.account is None:
            LOGGER.info("Oracle account hint %r did not resolve to a roster entry", account_hint)
            return None
        return result.account.id

    def enrich(self, candidate: CandidateTransaction, roster: Sequence[AccountRosterEntry]) -> CandidateTransaction:
        """Return the candidate with enrichment fields set, or unchanged on failure."""

        if not self.enabled:
            return candidate

        try:
            reply = self._oracle.complete(candidate.raw_text)
            payload = parse_oracle_response(reply)
        except OracleError as exc:
            LOGGER.warning("Enrichment skipped for %s: %s", candidate.source_id, exc)
            return candidate

        account_hint = _text_value(payload, "account", self._config.unknown_marker)
        fields = build_enrichment_fields(
            payload,
            self._resolve_account(account_hint, candidate, roster),
            self._config.unknown_marker,
        )
        LOGGER.debug("Enriched %s: %s", candidate.source_id, fields)
        return candidate.with_enriched(fields)
