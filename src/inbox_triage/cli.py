"""Command-line entry point for Inbox Triage."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from pathlib import Path

from inbox_triage.core import AppSettings, configure_logging, load_app_settings
from inbox_triage.core.models import Email, count_by_category
from inbox_triage.core.notifications import Notification
from inbox_triage.ingestion import (
    IngestionOrchestrator,
    RecordError,
    dump_emails,
    load_emails,
)
from inbox_triage.intelligence.llm import build_llm_client
from inbox_triage.storage import InMemoryEmailStore


class _ConsoleNotificationSink:
    """Print notifications as they arrive."""

    def notify(self, notification: Notification) -> None:
        print(f"[{notification.kind.value}] {notification.message}")


def build_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(description="Inbox Triage email classifier")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file containing configuration overrides.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="info",
        choices=["info", "ingest", "counts"],
        help="Operation to execute.",
    )
    parser.add_argument(
        "input",
        nargs="?",
        type=Path,
        default=None,
        help="JSON file holding an array of email records (ingest, counts).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Where to write ingested records (default: overwrite the input).",
    )
    return parser


def execute(args: argparse.Namespace, settings: AppSettings) -> int:
    """Execute the requested CLI command and return an exit code."""
    command = args.command
    if command == "info":
        print("Inbox Triage is ready. Point 'ingest' at a JSON file of emails.")
        print(f"Classifier provider: {settings.llm.provider}")
        try:
            model = build_llm_client(settings.llm).provider_id
        except ValueError as exc:
            model = f"unavailable ({exc})"
        print(f"Classifier model: {model}")
        print(f"Batch size: {settings.ingestion.batch_size}")
        print(f"Triage threshold: {settings.ingestion.triage_threshold}")
        return 0

    if args.input is None:
        print(f"The '{command}' command requires an input file.")
        return 2
    try:
        emails = load_emails(args.input)
    except (OSError, RecordError) as exc:
        print(f"Could not read emails: {exc}")
        return 1

    if command == "counts":
        _print_counts(emails)
        return 0
    return _run_ingest(settings, emails, args.output or args.input)


def main() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    settings = load_app_settings(env_file=args.env_file)
    configure_logging(settings.logging)
    raise SystemExit(execute(args, settings))


def _run_ingest(
    settings: AppSettings, emails: Sequence[Email], output: Path
) -> int:
    """Run one ingestion pass and write the resulting records."""
    store = InMemoryEmailStore(emails)
    try:
        orchestrator = IngestionOrchestrator.from_settings(
            settings,
            notifier=_ConsoleNotificationSink(),
            on_snapshot=store.replace,
        )
    except ValueError as exc:
        print(f"Ingest failed: {exc}")
        return 1

    result = asyncio.run(orchestrator.run(store.snapshot()))
    dump_emails(output, result.emails)

    report = result.report
    print(
        f"Selected {report.selected} email(s): {report.triaged} triaged locally, "
        f"{report.classified} classified, {report.fallback} defaulted, "
        f"{report.failed} failed across {report.batches} batch(es)."
    )
    print(f"Results written to {output}")
    return 0 if report.success else 1


def _print_counts(emails: Sequence[Email]) -> None:
    counts = count_by_category(emails)
    width = max(len(category.value) for category in counts)
    for category, count in counts.items():
        print(f"{category.value:<{width}}  {count:>4}")


if __name__ == "__main__":
    main()
