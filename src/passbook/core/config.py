"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely. Every
threshold and keyword list the engine uses is carried here instead of living
in module-level constants, so tests and deployments can tune them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

DEFAULT_CREDIT_KEYWORDS: Tuple[str, ...] = (
    "credited",
    "credit notification",
    "credit transaction",
    "received",
    "refund",
    "cashback",
    "reward",
    "deposit",
    "amount credited",
    "has been credited",
)

DEFAULT_DEBIT_KEYWORDS: Tuple[str, ...] = (
    "debited",
    "debit notification",
    "debit transaction",
    "spent",
    "paid",
    "purchase",
    "transaction amount",
    "withdrawn",
    "amount debited",
    "has been debited",
)

DEFAULT_FOOTER_MARKERS: Tuple[str, ...] = (
    "Regards",
    "Call us at",
    "Always open",
    "***",
    "Reach us at",
    "For any concerns",
    "If ",
    "Please ",
    "Customer Service",
)

DEFAULT_DECLINED_MARKERS: Tuple[str, ...] = (
    "has been declined",
    "incorrect pin",
    "transaction declined",
    "transaction failed",
)


@dataclass(frozen=True)
class ExtractionConfig:
    """Settings for the pattern engine and direction classifier."""

    credit_keywords: Tuple[str, ...] = DEFAULT_CREDIT_KEYWORDS
    debit_keywords: Tuple[str, ...] = DEFAULT_DEBIT_KEYWORDS
    footer_markers: Tuple[str, ...] = DEFAULT_FOOTER_MARKERS
    declined_markers: Tuple[str, ...] = DEFAULT_DECLINED_MARKERS
    high_confidence: int = 80
    placeholder_description: str = "Unknown"
    default_currency: str = "INR"


@dataclass(frozen=True)
class MatcherConfig:
    """Weights for the account identity resolver.

    Exact weights apply when the normalized attribute is a substring of the
    combined text. Fuzzy weights are scaled by the rapidfuzz partial ratio and
    only apply when that ratio reaches ``fuzzy_floor``. A declared number hit
    outweighs an exact name and keyword hit together.
    """

    acceptance_threshold: int = 25
    fuzzy_floor: int = 85
    name_exact: int = 20
    name_fuzzy: int = 10
    number_exact: int = 50
    number_fuzzy: int = 15
    keyword_exact: int = 25
    keyword_fuzzy: int = 10
    alias_exact: int = 25
    alias_fuzzy: int = 10


@dataclass(frozen=True)
class DedupConfig:
    """Deduplication settings for the core pipeline.

    - mode "thread": any stored record in the same thread is a duplicate.
    - mode "content": same source id, or same amount/direction/description
      within ``window_seconds`` inside the thread.
    """

    mode: str = "thread"
    window_seconds: int = 60


@dataclass(frozen=True)
class EnrichmentConfig:
    """Settings for the optional oracle enrichment pass."""

    enabled: bool = False
    unknown_marker: str = "Unknown"
