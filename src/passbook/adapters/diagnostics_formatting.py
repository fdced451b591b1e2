"""Shared diagnostics formatting helpers.

Keeping formatting here keeps CLI output consistent between the ``diagnose``
command and the per-run summary, whatever the output mode.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from decimal import Decimal
from enum import Enum
import json
from typing import Any, Dict, Iterable, Mapping

from rich.table import Table
from rich.text import Text

from passbook.core.models import ProcessOutcome
from passbook.core.results import ExtractionField


def _display_value(value: Any) -> str:
    if value is None:
        return "-"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return str(value)


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _format_plain(results: Mapping[str, ExtractionField[Any]]) -> str:
    width = max((len(name) for name in results), default=0)
    lines = [
        f"{name.ljust(width)}  {_display_value(result.value)}  [{result.rule_id}, {result.confidence}]"
        for name, result in results.items()
    ]
    return "\n".join(lines)


def _format_json(results: Mapping[str, ExtractionField[Any]]) -> str:
    payload: Dict[str, Dict[str, Any]] = {
        name: {
            "value": _json_value(result.value),
            "confidence": result.confidence,
            "rule_id": result.rule_id,
        }
        for name, result in results.items()
    }
    return json.dumps(payload, indent=2, ensure_ascii=False)


def format_diagnostics(results: Mapping[str, ExtractionField[Any]], mode: str) -> str:
    """Return extraction diagnostics formatted for the requested mode."""

    if mode == "plain":
        return _format_plain(results)
    if mode == "json":
        return _format_json(results)
    raise ValueError(f"Unsupported diagnostics format: {mode}")


def diagnostics_table(results: Mapping[str, ExtractionField[Any]], high_confidence: int = 80) -> Table:
    """Rich table with one row per field; high-confidence rows in green."""

    table = Table(title="Extraction diagnostics")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_column("Rule")
    table.add_column("Confidence", justify="right")

    for name, result in results.items():
        if not result.is_present:
            style = "dim"
        elif result.is_high_confidence(high_confidence):
            style = "green"
        else:
            style = "yellow"
        table.add_row(
            name,
            Text(_display_value(result.value), style=style),
            result.rule_id,
            str(result.confidence),
        )
    return table


def summarize_outcomes(outcomes: Iterable[ProcessOutcome]) -> str:
    """One-line count of outcomes per status, e.g. ``HANDED_OFF=3 MERGED=1``."""

    counts = Counter(outcome.status.value for outcome in outcomes)
    if not counts:
        return "no messages"
    return " ".join(f"{status}={counts[status]}" for status in sorted(counts))
