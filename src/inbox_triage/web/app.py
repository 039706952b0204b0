"""FastAPI application exposing the ingestion pipeline as a JSON API."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException, status as http_status

from inbox_triage.core import AppSettings, NotificationFeed, load_app_settings
from inbox_triage.core.models import ProcessingStatus
from inbox_triage.ingestion import (
    IngestionAlreadyRunningError,
    IngestionOrchestrator,
    IngestionReport,
    RecordError,
    parse_email_records,
    serialize_email,
)
from inbox_triage.storage import InMemoryEmailStore

LOGGER = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parents[3]
_DEFAULT_ENV_FILE = _PROJECT_ROOT / ".env"
_ENV_FILE_OVERRIDE_VAR = "INBOX_TRIAGE_API_ENV_FILE"

_RUN_ACTIVE_DETAIL = "An ingestion run is already active"


def create_app(
    settings: AppSettings | None = None,
    *,
    orchestrator: IngestionOrchestrator | None = None,
    store: InMemoryEmailStore | None = None,
    feed: NotificationFeed | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When ``orchestrator`` is supplied the caller is responsible for wiring
    its notifier and snapshot listener to ``feed`` and ``store``.
    """
    app_settings = settings or load_app_settings(env_file=_resolve_env_file())
    email_store = store if store is not None else InMemoryEmailStore()
    notification_feed = feed if feed is not None else NotificationFeed()
    pipeline = orchestrator or IngestionOrchestrator.from_settings(
        app_settings,
        notifier=notification_feed,
        on_snapshot=email_store.replace,
    )
    app = FastAPI(title="Inbox Triage API")

    @app.get("/emails")
    async def list_emails(
        category: str | None = None,
        status: ProcessingStatus | None = None,
    ) -> list[dict[str, Any]]:
        emails = email_store.filter(category=category, status=status)
        return [serialize_email(email) for email in emails]

    @app.get("/emails/{email_id}")
    async def get_email(email_id: str) -> dict[str, Any]:
        email = email_store.get(email_id)
        if email is None:
            raise HTTPException(
                status_code=http_status.HTTP_404_NOT_FOUND,
                detail=f"Email {email_id} not found",
            )
        return serialize_email(email)

    @app.put("/emails")
    async def replace_emails(records: list[dict[str, Any]]) -> dict[str, int]:
        if pipeline.is_running:
            raise HTTPException(
                status_code=http_status.HTTP_409_CONFLICT, detail=_RUN_ACTIVE_DETAIL
            )
        try:
            emails = parse_email_records(records)
        except RecordError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            ) from exc
        email_store.replace(emails)
        LOGGER.info("Loaded %d email(s) into the store", len(emails))
        return {"count": len(emails)}

    @app.post("/ingest")
    async def trigger_ingest() -> dict[str, Any]:
        try:
            result = await pipeline.run(email_store.snapshot())
        except IngestionAlreadyRunningError as exc:
            raise HTTPException(
                status_code=http_status.HTTP_409_CONFLICT, detail=str(exc)
            ) from exc
        email_store.replace(result.emails)
        return _serialize_report(result.report)

    @app.get("/categories/counts")
    async def category_counts() -> dict[str, int]:
        return {
            category.value: count
            for category, count in email_store.category_counts().items()
        }

    @app.get("/notifications")
    async def drain_notifications() -> list[dict[str, str]]:
        return [
            {"message": notification.message, "kind": notification.kind.value}
            for notification in notification_feed.drain()
        ]

    return app


def _serialize_report(report: IngestionReport) -> dict[str, Any]:
    return {
        "outcome": report.outcome.value,
        "success": report.success,
        "message": report.message,
        "selected": report.selected,
        "triaged": report.triaged,
        "deferred": report.deferred,
        "batches": report.batches,
        "classified": report.classified,
        "fallback": report.fallback,
        "failed": report.failed,
    }


def _resolve_env_file() -> Path:
    override = os.getenv(_ENV_FILE_OVERRIDE_VAR)
    if override:
        return Path(override)
    return _DEFAULT_ENV_FILE


__all__ = ["create_app"]
