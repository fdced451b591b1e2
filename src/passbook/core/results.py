"""Confidence-scored extraction results (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

NO_MATCH = "NO_MATCH"
HIGH_CONFIDENCE = 80


@dataclass(frozen=True)
class ExtractionField(Generic[T]):
    """A single extracted value with the rule that produced it.

    Absence is a regular value (``value is None``, confidence 0) rather than an
    exception, so callers can thread results through without try/except.
    """

    value: Optional[T]
    confidence: int
    rule_id: str

    def __post_init__(self) -> None:
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence must be within 0-100, got {self.confidence}")

    @classmethod
    def of(cls, value: T, confidence: int, rule_id: str) -> "ExtractionField[T]":
        return cls(value=value, confidence=confidence, rule_id=rule_id)

    @classmethod
    def absent(cls) -> "ExtractionField[T]":
        return cls(value=None, confidence=0, rule_id=NO_MATCH)

    @property
    def is_present(self) -> bool:
        return self.value is not None

    def is_high_confidence(self, threshold: int = HIGH_CONFIDENCE) -> bool:
        return self.is_present and self.confidence >= threshold

    def __str__(self) -> str:
        return f"{self.value!r} ({self.rule_id}, confidence={self.confidence})"
