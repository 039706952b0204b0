"""Ingestion orchestration: heuristic triage followed by paced LLM batches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from enum import Enum

from ..core.config import (
    DEFAULT_ACTION_EXTRACTION_PROMPT,
    DEFAULT_CATEGORIZATION_PROMPT,
    AppSettings,
)
from ..core.interfaces import ClassificationService, SnapshotListener, TriageFunction
from ..core.models import Email, EmailCategory, ProcessingStatus
from ..core.notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationKind,
    NotificationSink,
)
from ..intelligence.batch import BATCH_SIZE, BatchClassifier
from ..intelligence.llm import QuotaExceededError, build_llm_client
from ..intelligence.retry import Sleep
from ..intelligence.triage import triage_email

LOGGER = logging.getLogger(__name__)

TRIAGE_THRESHOLD = 0.8
INTER_BATCH_DELAY_SECONDS = 2.0
QUOTA_COOLDOWN_SECONDS = 5.0

NOTHING_TO_DO_MESSAGE = "All emails are already processed!"
COMPLETED_MESSAGE = "Ingestion complete!"

_ELIGIBLE_STATUSES = frozenset({ProcessingStatus.PENDING, ProcessingStatus.FAILED})


class IngestionAlreadyRunningError(RuntimeError):
    """Raised when a run is requested while another one is still active."""


class IngestionOutcome(str, Enum):
    """Terminal state of an ingestion run."""

    NOTHING_TO_DO = "nothing_to_do"
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class IngestionReport:
    """Summary of one ingestion run."""

    outcome: IngestionOutcome
    message: str
    selected: int = 0
    triaged: int = 0
    deferred: int = 0
    batches: int = 0
    classified: int = 0
    fallback: int = 0
    failed: int = 0

    @property
    def success(self) -> bool:
        return self.outcome is not IngestionOutcome.COMPLETED_WITH_FAILURES


@dataclass(frozen=True, slots=True)
class IngestionResult:
    """Final email collection together with the run summary."""

    emails: tuple[Email, ...]
    report: IngestionReport


class IngestionOrchestrator:
    """Drive pending and failed emails through triage and batch classification.

    Emails are never mutated in place: every phase produces a new tuple that
    is handed to ``on_snapshot``, so observers only ever see whole emails.
    Batches run strictly one after another.
    """

    def __init__(
        self,
        classifier: ClassificationService,
        *,
        categorization_prompt: str = DEFAULT_CATEGORIZATION_PROMPT,
        action_prompt: str = DEFAULT_ACTION_EXTRACTION_PROMPT,
        batch_size: int = BATCH_SIZE,
        triage_threshold: float = TRIAGE_THRESHOLD,
        inter_batch_delay: float = INTER_BATCH_DELAY_SECONDS,
        quota_cooldown: float = QUOTA_COOLDOWN_SECONDS,
        triage: TriageFunction = triage_email,
        notifier: NotificationSink | None = None,
        on_snapshot: SnapshotListener | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        # pylint: disable=too-many-arguments
        """Initialise the orchestrator with its classifier and pacing policy."""
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._classifier = classifier
        self._categorization_prompt = categorization_prompt
        self._action_prompt = action_prompt
        self._batch_size = batch_size
        self._triage_threshold = triage_threshold
        self._inter_batch_delay = inter_batch_delay
        self._quota_cooldown = quota_cooldown
        self._triage = triage
        self._notifier = notifier
        self._on_snapshot = on_snapshot
        self._sleep = sleep
        self._running = False

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        *,
        classifier: ClassificationService | None = None,
        notifier: NotificationSink | None = None,
        on_snapshot: SnapshotListener | None = None,
    ) -> IngestionOrchestrator:
        """Build an orchestrator (and by default its classifier) from settings.

        Without an explicit ``notifier`` notifications go to the application log.
        """
        ingestion = settings.ingestion
        if classifier is None:
            classifier = BatchClassifier(
                build_llm_client(settings.llm),
                body_char_limit=ingestion.body_char_limit,
                retries=ingestion.retry_attempts,
                retry_initial_delay=ingestion.retry_initial_delay_seconds,
            )
        return cls(
            classifier,
            categorization_prompt=settings.prompts.categorization,
            action_prompt=settings.prompts.action_extraction,
            batch_size=ingestion.batch_size,
            triage_threshold=ingestion.triage_threshold,
            inter_batch_delay=ingestion.inter_batch_delay_seconds,
            quota_cooldown=ingestion.quota_cooldown_seconds,
            notifier=notifier if notifier is not None else LoggingNotificationSink(),
            on_snapshot=on_snapshot,
        )

    @property
    def is_running(self) -> bool:
        """Whether a run is currently in progress."""
        return self._running

    async def run(
        self,
        emails: Sequence[Email],
        *,
        categorization_prompt: str | None = None,
        action_prompt: str | None = None,
    ) -> IngestionResult:
        """Classify every pending or failed email and return the new collection.

        Raises :class:`IngestionAlreadyRunningError` if called while a previous
        run has not finished; the collection is left untouched in that case.
        """
        if self._running:
            raise IngestionAlreadyRunningError("An ingestion run is already active")
        self._running = True
        try:
            return await self._run(
                list(emails),
                categorization_prompt or self._categorization_prompt,
                action_prompt or self._action_prompt,
            )
        finally:
            self._running = False

    async def _run(
        self,
        current: list[Email],
        categorization_prompt: str,
        action_prompt: str,
    ) -> IngestionResult:
        selected = [
            index
            for index, email in enumerate(current)
            if email.processing_status in _ELIGIBLE_STATUSES
        ]
        if not selected:
            LOGGER.info("No pending or failed emails; nothing to ingest")
            report = IngestionReport(
                outcome=IngestionOutcome.NOTHING_TO_DO, message=NOTHING_TO_DO_MESSAGE
            )
            self._notify(report.message, NotificationKind.SUCCESS)
            return IngestionResult(emails=tuple(current), report=report)

        LOGGER.info("Starting ingestion of %d email(s)", len(selected))
        report = IngestionReport(
            outcome=IngestionOutcome.COMPLETED,
            message=COMPLETED_MESSAGE,
            selected=len(selected),
        )

        deferred = self._apply_triage(current, selected, report)
        self._publish(current)

        batches = [
            deferred[start : start + self._batch_size]
            for start in range(0, len(deferred), self._batch_size)
        ]
        report.batches = len(batches)
        for position, batch in enumerate(batches, start=1):
            await self._process_batch(
                current, batch, position, categorization_prompt, action_prompt, report
            )
            self._publish(current)
            if position < len(batches):
                await self._sleep(self._inter_batch_delay)

        report.failed = sum(
            1 for email in current if email.processing_status is ProcessingStatus.FAILED
        )
        if report.failed:
            report.outcome = IngestionOutcome.COMPLETED_WITH_FAILURES
            report.message = (
                f"Completed with {report.failed} failure(s), re-run to retry."
            )
            self._notify(report.message, NotificationKind.ERROR)
        else:
            self._notify(report.message, NotificationKind.SUCCESS)

        LOGGER.info(
            "Ingestion finished: selected=%s, triaged=%s, batches=%s, "
            "classified=%s, fallback=%s, failed=%s",
            report.selected,
            report.triaged,
            report.batches,
            report.classified,
            report.fallback,
            report.failed,
        )
        return IngestionResult(emails=tuple(current), report=report)

    def _apply_triage(
        self, current: list[Email], selected: list[int], report: IngestionReport
    ) -> list[int]:
        deferred: list[int] = []
        for index in selected:
            email = current[index]
            triage = self._triage(email)
            if triage.category is not None and triage.confidence > self._triage_threshold:
                current[index] = replace(
                    email,
                    category=triage.category,
                    action_items=(),
                    processing_status=ProcessingStatus.PROCESSED,
                )
                report.triaged += 1
            else:
                current[index] = replace(
                    email, processing_status=ProcessingStatus.PROCESSING
                )
                deferred.append(index)
        report.deferred = len(deferred)
        LOGGER.info(
            "Triage resolved %d email(s), deferring %d to the classifier",
            report.triaged,
            report.deferred,
        )
        return deferred

    async def _process_batch(
        self,
        current: list[Email],
        batch: list[int],
        position: int,
        categorization_prompt: str,
        action_prompt: str,
        report: IngestionReport,
    ) -> None:
        # pylint: disable=too-many-arguments
        batch_emails = [current[index] for index in batch]
        try:
            results = await self._classifier.classify_batch(
                batch_emails, categorization_prompt, action_prompt
            )
        except QuotaExceededError as exc:
            LOGGER.warning("Batch %d hit the provider quota: %s", position, exc)
            self._notify(
                f"API limit reached. Pausing for {self._quota_cooldown:g} seconds...",
                NotificationKind.ERROR,
            )
            await self._sleep(self._quota_cooldown)
            _mark_failed(current, batch)
            return
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "Batch %d failed unexpectedly: %s", position, exc, exc_info=True
            )
            _mark_failed(current, batch)
            return

        for index in batch:
            email = current[index]
            result = results.get(email.id)
            if result is None:
                LOGGER.warning(
                    "No classification returned for id %s; filing under %s",
                    email.id,
                    EmailCategory.OTHERS.value,
                )
                current[index] = replace(
                    email,
                    category=EmailCategory.OTHERS,
                    processing_status=ProcessingStatus.PROCESSED,
                )
                report.fallback += 1
                continue
            current[index] = replace(
                email,
                category=result.category,
                action_items=result.action_items,
                processing_status=ProcessingStatus.PROCESSED,
            )
            report.classified += 1
        LOGGER.debug("Batch %d classified %d email(s)", position, len(batch))

    def _publish(self, current: list[Email]) -> None:
        if self._on_snapshot is not None:
            self._on_snapshot(tuple(current))

    def _notify(self, message: str, kind: NotificationKind) -> None:
        if self._notifier is not None:
            self._notifier.notify(Notification(message=message, kind=kind))


def _mark_failed(current: list[Email], batch: list[int]) -> None:
    for index in batch:
        current[index] = replace(
            current[index], processing_status=ProcessingStatus.FAILED
        )


__all__ = [
    "IngestionAlreadyRunningError",
    "IngestionOrchestrator",
    "IngestionOutcome",
    "IngestionReport",
    "IngestionResult",
]
