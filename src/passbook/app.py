"""Application entry point for passbook."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sys
import threading
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Dict, List, Optional

from art import tprint
from dotenv import load_dotenv
from rich.console import Console

from passbook import settings
from passbook.adapters.diagnostics_formatting import diagnostics_table, format_diagnostics, summarize_outcomes
from passbook.adapters.mailbox_export import MailboxExportReader
from passbook.adapters.sqlite_storage import SQLiteTransactionStore
from passbook.client import build_oracle
from passbook.core.enrichment import EnrichmentTrack
from passbook.core.matcher import AccountResolver
from passbook.core.models import ProcessOutcome, RawMessage, SenderRule
from passbook.core.normalizer import clean_text
from passbook.core.processor import MessageProcessor
from passbook.core.rules_engine import PatternEngine
from passbook.core.sender_rules import build_mail_queries, build_sender_rules, route_message

NAME = "PASSBOOK"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/passbook.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _select_senders(rules: List[SenderRule], name: Optional[str]) -> List[SenderRule]:
    if not name:
        return rules
    selected = [rule for rule in rules if rule.name == name]
    if not selected:
        known = ", ".join(rule.name for rule in rules)
        raise RuntimeError(f"Unknown sender {name!r}; configured senders: {known}")
    return selected


def _group_by_sender(messages: List[RawMessage], rules: List[SenderRule]) -> Dict[str, List[RawMessage]]:
    grouped: Dict[str, List[RawMessage]] = {rule.name: [] for rule in rules}
    for message in messages:
        rule = route_message(message, rules)
        if rule is not None:
            grouped[rule.name].append(message)
    return grouped


def _build_processor(store: SQLiteTransactionStore) -> MessageProcessor:
    engine = PatternEngine(settings.EXTRACTION)
    resolver = AccountResolver(settings.MATCHER)
    enrichment = EnrichmentTrack(build_oracle(), resolver, settings.ENRICHMENT)
    return MessageProcessor(
        engine=engine,
        resolver=resolver,
        enrichment=enrichment,
        store=store,
        dedup_config=settings.DEDUP,
    )


def _run(export_path: Optional[str], sender_name: Optional[str]) -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting passbook")

    sender_rules = _select_senders(build_sender_rules(settings.SENDERS_CONFIG), sender_name)
    logger.info("%s sender rules and %s accounts are loaded", len(sender_rules), len(settings.ACCOUNTS))

    store = SQLiteTransactionStore(settings.DB_PATH)
    store.init_db()
    processor = _build_processor(store)

    reader = MailboxExportReader(export_path or settings.MAILBOX_EXPORT_PATH)
    messages = list(reader.messages())
    grouped = _group_by_sender(messages, sender_rules)
    unrouted = len(messages) - sum(len(batch) for batch in grouped.values())
    if unrouted:
        logger.info("%s message(s) matched no sender rule and were skipped", unrouted)

    # Ctrl+C finishes the current message, then stops the run.
    cancel_event = threading.Event()

    def _request_stop(signum, frame) -> None:
        logger.info("Stop requested; finishing the current message")
        cancel_event.set()

    previous_handler = signal.signal(signal.SIGINT, _request_stop)
    outcomes: List[ProcessOutcome] = []
    try:
        for rule in sender_rules:
            if cancel_event.is_set():
                break
            batch = grouped.get(rule.name, [])
            if not batch:
                continue
            logger.info("Processing %s message(s) for %s", len(batch), rule.name)
            results = processor.process_batch(batch, rule, settings.ACCOUNTS, cancel_event)
            logger.info("%s: %s", rule.name, summarize_outcomes(results))
            outcomes.extend(results)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    logger.info("Run complete: %s", summarize_outcomes(outcomes))
    print(summarize_outcomes(outcomes))


def _read_diagnose_input(text: Optional[str], path: Optional[str]) -> str:
    if path:
        with open(path, "r", encoding="utf-8") as handle:
            return handle.read()
    if text:
        return text
    return sys.stdin.read()


def _diagnose(text: Optional[str], path: Optional[str], sender_name: Optional[str], output: str) -> None:
    _configure_logging()
    raw = clean_text(_read_diagnose_input(text, path))
    if not raw:
        raise RuntimeError("Nothing to diagnose: provide text, --file, or stdin")

    sender = None
    if sender_name:
        sender = _select_senders(build_sender_rules(settings.SENDERS_CONFIG), sender_name)[0]

    engine = PatternEngine(settings.EXTRACTION)
    results = engine.diagnose(raw, sender)
    if output == "table":
        Console().print(diagnostics_table(results, settings.EXTRACTION.high_confidence))
        return
    print(format_diagnostics(results, output))


def _queries(sender_name: Optional[str], lookback_days: Optional[int]) -> None:
    sender_rules = _select_senders(build_sender_rules(settings.SENDERS_CONFIG), sender_name)
    days = settings.LOOKBACK_DAYS if lookback_days is None else lookback_days
    today = datetime.now().date()
    for rule in sender_rules:
        for query in build_mail_queries(rule, days, today):
            print(f"{rule.name}\t{query}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="passbook")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Process a mailbox export into transactions")
    run_parser.add_argument("--export", help="Path to the mailbox export JSON (default from config.json)")
    run_parser.add_argument("--sender", help="Only process this sender rule")

    diagnose_parser = subparsers.add_parser("diagnose", help="Show which rules fire for an alert text")
    diagnose_parser.add_argument("text", nargs="?", help="Alert text (reads stdin when omitted)")
    diagnose_parser.add_argument("--file", help="Read the alert text from a file")
    diagnose_parser.add_argument("--sender", help="Apply this sender's rule overrides")
    diagnose_parser.add_argument("--format", choices=["table", "plain", "json"], default="table")

    queries_parser = subparsers.add_parser("queries", help="Print mailbox search queries per sender")
    queries_parser.add_argument("--sender", help="Only print queries for this sender rule")
    queries_parser.add_argument("--lookback", type=int, help="Days to look back (default from config.json)")

    args = parser.parse_args(argv)
    if args.command == "diagnose":
        _diagnose(args.text, args.file, args.sender, args.format)
        return
    if args.command == "queries":
        _queries(args.sender, args.lookback)
        return
    _run(getattr(args, "export", None), getattr(args, "sender", None))


if __name__ == "__main__":
    main()
