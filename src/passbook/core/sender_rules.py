"""Per-sender configuration, mailbox queries and routing (core domain)."""

from __future__ import annotations

from datetime import date, timedelta
import logging
from typing import Iterable, List, Mapping, Optional, Sequence

from passbook.core.models import Direction, RawMessage, SenderRule
from passbook.core.patterns import compile_rules

LOGGER = logging.getLogger(__name__)

QUERY_TEMPLATE = "subject:({subject}) from:({sender}) after:{after} before:{before}"


def build_sender_rules(senders_config: Iterable[Mapping[str, object]]) -> List[SenderRule]:
    """Validate sender configs and turn them into SenderRule objects.

    Override rules are compiled once here so a broken regex fails at startup
    instead of on the first message.
    """

    rules: List[SenderRule] = []
    seen = set()
    for raw in senders_config:
        if not raw.get("enabled", True):
            continue
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValueError("Sender rule is missing a name")
        if name in seen:
            raise ValueError(f"Duplicate sender rule name: {name}")
        seen.add(name)

        subjects = tuple(str(s) for s in raw.get("subjects", []) or [] if str(s).strip())
        if not subjects:
            raise ValueError(f"Sender rule {name} needs at least one subject pattern")
        address = str(raw.get("sender") or "").strip()
        if not address:
            raise ValueError(f"Sender rule {name} needs a sender address")

        fixed_raw = raw.get("fixed_direction")
        fixed_direction = Direction.parse(str(fixed_raw)) if fixed_raw else None
        if fixed_raw and fixed_direction is None:
            raise ValueError(f"Sender rule {name} has invalid fixed_direction {fixed_raw!r}")

        overrides = tuple(dict(rule) for rule in raw.get("extraction_overrides", []) or [])
        compile_rules(overrides)

        rules.append(
            SenderRule(
                name=name,
                subject_patterns=subjects,
                sender_address=address,
                fixed_direction=fixed_direction,
                extraction_overrides=overrides,
                skip_declined=bool(raw.get("skip_declined", True)),
            )
        )
    return rules


def build_mail_queries(rule: SenderRule, lookback_days: int, today: Optional[date] = None) -> List[str]:
    """One mailbox search query per subject pattern.

    The window runs from ``today - lookback_days`` up to and including today
    (the mailbox ``before:`` bound is exclusive, hence ``today + 1``).
    """

    if lookback_days < 0:
        raise ValueError("lookback_days must be >= 0")
    today = today or date.today()
    after = (today - timedelta(days=lookback_days)).isoformat()
    before = (today + timedelta(days=1)).isoformat()
    return [
        QUERY_TEMPLATE.format(subject=subject, sender=rule.sender_address, after=after, before=before)
        for subject in rule.subject_patterns
    ]


def matches_sender(message: RawMessage, rule: SenderRule) -> bool:
    """True when the message comes from the rule's address with a known subject."""

    if rule.sender_address.lower() not in (message.sender or "").lower():
        return False
    subject = (message.subject or "").lower()
    return any(pattern.lower() in subject for pattern in rule.subject_patterns)


def route_message(message: RawMessage, rules: Sequence[SenderRule]) -> Optional[SenderRule]:
    """First sender rule that claims the message, or None."""

    for rule in rules:
        if matches_sender(message, rule):
            return rule
    LOGGER.debug("No sender rule for message %s from %r", message.source_id, message.sender)
    return None
