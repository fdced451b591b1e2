"""Static configuration for passbook.

All user-editable settings (senders, account roster, extraction keywords,
matcher weights, dedup, enrichment) live in a single JSON file for quick edits
without touching Python. Set PASSBOOK_CONFIG to use a file other than
``config.json`` at the project root.
"""

import json
import os

from passbook.core.config import (
    DEFAULT_CREDIT_KEYWORDS,
    DEFAULT_DEBIT_KEYWORDS,
    DEFAULT_DECLINED_MARKERS,
    DEFAULT_FOOTER_MARKERS,
    DedupConfig,
    EnrichmentConfig,
    ExtractionConfig,
    MatcherConfig,
)
from passbook.core.models import AccountRosterEntry

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

CONFIG_PATH = os.getenv("PASSBOOK_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _resolve_path(path: str) -> str:
    return path if os.path.isabs(path) else os.path.join(PROJECT_ROOT, path)


def _load_json_config(path: str = CONFIG_PATH) -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _split_list(value) -> tuple[str, ...]:
    # Accept both JSON lists and comma-separated strings.
    if not value:
        return ()
    if isinstance(value, str):
        value = value.split(",")
    return tuple(str(item).strip() for item in value if str(item).strip())


def build_roster(raw_accounts: list[dict]) -> tuple[AccountRosterEntry, ...]:
    """Turn the ``accounts`` section into read-only roster entries."""

    roster: list[AccountRosterEntry] = []
    ids: set[str] = set()
    for entry in raw_accounts:
        if not entry.get("enabled", True):
            continue
        name = str(entry.get("name") or "").strip()
        if not name:
            raise ValueError(f"Account entry without a name: {entry!r}")
        account_id = str(entry.get("id") or name)
        if account_id in ids:
            raise ValueError(f"Duplicate account id: {account_id}")
        ids.add(account_id)
        number = entry.get("number")
        roster.append(
            AccountRosterEntry(
                id=account_id,
                name=name,
                number=str(number) if number else None,
                keywords=_split_list(entry.get("keywords")),
                aliases=_split_list(entry.get("aliases")),
            )
        )
    return tuple(roster)


def build_extraction_config(raw: dict) -> ExtractionConfig:
    return ExtractionConfig(
        credit_keywords=_split_list(raw.get("credit_keywords")) or DEFAULT_CREDIT_KEYWORDS,
        debit_keywords=_split_list(raw.get("debit_keywords")) or DEFAULT_DEBIT_KEYWORDS,
        footer_markers=tuple(raw.get("footer_markers") or DEFAULT_FOOTER_MARKERS),
        declined_markers=_split_list(raw.get("declined_markers")) or DEFAULT_DECLINED_MARKERS,
        high_confidence=int(raw.get("high_confidence", 80)),
        placeholder_description=str(raw.get("placeholder_description", "Unknown")),
        default_currency=str(raw.get("default_currency", "INR")),
    )


_WEIGHT_KEYS = (
    "name_exact",
    "name_fuzzy",
    "number_exact",
    "number_fuzzy",
    "keyword_exact",
    "keyword_fuzzy",
    "alias_exact",
    "alias_fuzzy",
)


def build_matcher_config(raw: dict) -> MatcherConfig:
    defaults = MatcherConfig()
    weights = raw.get("weights", {})
    return MatcherConfig(
        acceptance_threshold=int(raw.get("acceptance_threshold", defaults.acceptance_threshold)),
        fuzzy_floor=int(raw.get("fuzzy_floor", defaults.fuzzy_floor)),
        **{key: int(weights.get(key, getattr(defaults, key))) for key in _WEIGHT_KEYS},
    )


_CONFIG = _load_json_config()

# Sender rules are validated by the core (passbook.core.sender_rules).
SENDERS_CONFIG = _CONFIG.get("senders", [])

# The roster is read-only for the whole run.
ACCOUNTS = build_roster(_CONFIG.get("accounts", []))

EXTRACTION = build_extraction_config(_CONFIG.get("extraction", {}))
MATCHER = build_matcher_config(_CONFIG.get("matcher", {}))

# Deduplication controls.
# - mode "thread": anything already stored for the thread is a duplicate
# - mode "content": same source id, or same amount/type/description in the window
_dedup = _CONFIG.get("dedup", {})
DEDUP = DedupConfig(
    mode=_dedup.get("mode", "thread"),
    window_seconds=int(_dedup.get("window_seconds", 60)),
)

# Enrichment is off unless explicitly enabled; the host/key come from .env.
_enrichment = _CONFIG.get("enrichment", {})
ENRICHMENT = EnrichmentConfig(
    enabled=bool(_enrichment.get("enabled", False)),
    unknown_marker=str(_enrichment.get("unknown_marker", "Unknown")),
)
ORACLE_MODEL = _enrichment.get("model", "gpt-oss-20b")
ORACLE_TIMEOUT = float(_enrichment.get("timeout_seconds", 30))

# Mailbox export location and the query window used by `passbook queries`.
_mailbox = _CONFIG.get("mailbox", {})
MAILBOX_EXPORT_PATH = _resolve_path(_mailbox.get("export_path", "mailbox.json"))
LOOKBACK_DAYS = int(_mailbox.get("lookback_days", 7))

# Where to store the SQLite database.
DB_PATH = _resolve_path(_CONFIG.get("storage", {}).get("db_path", "passbook.db"))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
