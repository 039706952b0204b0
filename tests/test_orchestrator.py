"""Tests for the ingestion orchestrator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import replace

import pytest

from inbox_triage.core.config import AppSettings, IngestionSettings
from inbox_triage.core.models import (
    ActionItem,
    ClassificationResult,
    Email,
    EmailCategory,
    ProcessingStatus,
)
from inbox_triage.core.notifications import NotificationFeed, NotificationKind
from inbox_triage.ingestion.orchestrator import (
    IngestionAlreadyRunningError,
    IngestionOrchestrator,
    IngestionOutcome,
)
from inbox_triage.intelligence.llm import QuotaExceededError


class StubClassifier:
    """Classifier returning scripted results per call, recording every batch."""

    def __init__(self, events: list[tuple], *outcomes) -> None:
        self._events = events
        self._outcomes = list(outcomes)
        self.batches: list[list[str]] = []

    async def classify_batch(
        self,
        emails: Sequence[Email],
        categorization_prompt: str,
        action_prompt: str,
    ) -> dict[str, ClassificationResult]:
        ids = [email.id for email in emails]
        self.batches.append(ids)
        self._events.append(("classify", tuple(ids)))
        outcome = self._outcomes.pop(0) if self._outcomes else None
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return {
                email_id: ClassificationResult(category=EmailCategory.TODO)
                for email_id in ids
            }
        return outcome


class RecordingSleep:
    def __init__(self, events: list[tuple]) -> None:
        self._events = events

    async def __call__(self, delay: float) -> None:
        self._events.append(("sleep", delay))

    @property
    def delays(self) -> list[float]:
        return [event[1] for event in self._events if event[0] == "sleep"]


def _plain(email_id: str, **changes) -> Email:
    email = Email(
        id=email_id,
        sender="Bob Stone",
        sender_email="bob@client.com",
        subject=f"Question {email_id}",
        body="Could you send over the latest figures?",
    )
    return replace(email, **changes) if changes else email


def _newsletter(email_id: str) -> Email:
    return Email(
        id=email_id,
        sender="X Weekly",
        sender_email="newsletter@x.io",
        subject="Your weekly roundup",
        body="Top stories. Click here to unsubscribe.",
    )


class Harness:
    def __init__(self, *outcomes, batch_size: int = 3) -> None:
        self.events: list[tuple] = []
        self.classifier = StubClassifier(self.events, *outcomes)
        self.sleep = RecordingSleep(self.events)
        self.feed = NotificationFeed()
        self.snapshots: list[tuple[Email, ...]] = []
        self.orchestrator = IngestionOrchestrator(
            self.classifier,
            batch_size=batch_size,
            notifier=self.feed,
            on_snapshot=self._record_snapshot,
            sleep=self.sleep,
        )

    def _record_snapshot(self, emails: tuple[Email, ...]) -> None:
        self.snapshots.append(emails)
        self.events.append(("snapshot", len(self.snapshots)))

    def run(self, emails: list[Email]):
        return asyncio.run(self.orchestrator.run(emails))


def _by_id(emails: Sequence[Email]) -> dict[str, Email]:
    return {email.id: email for email in emails}


def test_confident_triage_skips_the_classifier() -> None:
    harness = Harness()

    result = harness.run([_newsletter("1"), _newsletter("2")])

    assert harness.classifier.batches == []
    assert harness.sleep.delays == []
    assert all(email.category is EmailCategory.NEWSLETTER for email in result.emails)
    assert all(
        email.processing_status is ProcessingStatus.PROCESSED for email in result.emails
    )
    assert result.report.outcome is IngestionOutcome.COMPLETED
    assert result.report.triaged == 2
    assert result.report.batches == 0


def test_deferred_emails_are_batched_in_order_with_pacing() -> None:
    harness = Harness()
    emails = [_plain(str(number)) for number in range(1, 8)]

    result = harness.run(emails)

    assert harness.classifier.batches == [
        ["1", "2", "3"],
        ["4", "5", "6"],
        ["7"],
    ]
    assert harness.sleep.delays == [2.0, 2.0]
    assert all(email.category is EmailCategory.TODO for email in result.emails)
    assert result.report.batches == 3
    assert result.report.classified == 7
    assert result.report.success
    assert harness.feed.drain()[-1].message == "Ingestion complete!"


def test_classifier_results_are_applied() -> None:
    results = {
        "1": ClassificationResult(
            category=EmailCategory.IMPORTANT,
            action_items=(ActionItem(task="Send figures", deadline="Friday"),),
        )
    }
    harness = Harness(results)

    result = harness.run([_plain("1")])

    email = result.emails[0]
    assert email.category is EmailCategory.IMPORTANT
    assert email.action_items == (ActionItem(task="Send figures", deadline="Friday"),)
    assert email.processing_status is ProcessingStatus.PROCESSED


def test_missing_results_fall_back_to_others() -> None:
    kept_items = (ActionItem(task="Existing task"),)
    harness = Harness({"1": ClassificationResult(category=EmailCategory.SPAM)})

    result = harness.run([_plain("1"), _plain("2", action_items=kept_items)])

    emails = _by_id(result.emails)
    assert emails["1"].category is EmailCategory.SPAM
    assert emails["2"].category is EmailCategory.OTHERS
    assert emails["2"].processing_status is ProcessingStatus.PROCESSED
    assert emails["2"].action_items == kept_items
    assert result.report.fallback == 1


def test_quota_error_cools_down_and_fails_only_that_batch() -> None:
    harness = Harness(None, QuotaExceededError("quota"), None)
    emails = [_plain(str(number)) for number in range(1, 8)]

    result = harness.run(emails)

    statuses = {email.id: email.processing_status for email in result.emails}
    assert [statuses[str(number)] for number in range(1, 8)] == [
        ProcessingStatus.PROCESSED,
        ProcessingStatus.PROCESSED,
        ProcessingStatus.PROCESSED,
        ProcessingStatus.FAILED,
        ProcessingStatus.FAILED,
        ProcessingStatus.FAILED,
        ProcessingStatus.PROCESSED,
    ]
    assert harness.sleep.delays == [2.0, 5.0, 2.0]
    assert result.report.outcome is IngestionOutcome.COMPLETED_WITH_FAILURES
    assert not result.report.success
    assert result.report.failed == 3

    notifications = harness.feed.drain()
    assert [note.message for note in notifications] == [
        "API limit reached. Pausing for 5 seconds...",
        "Completed with 3 failure(s), re-run to retry.",
    ]
    assert all(note.kind is NotificationKind.ERROR for note in notifications)


def test_unexpected_error_fails_the_batch_and_continues() -> None:
    harness = Harness(RuntimeError("boom"), None)
    emails = [_plain(str(number)) for number in range(1, 5)]

    result = harness.run(emails)

    emails_by_id = _by_id(result.emails)
    assert {emails_by_id[str(n)].processing_status for n in (1, 2, 3)} == {
        ProcessingStatus.FAILED
    }
    assert emails_by_id["4"].processing_status is ProcessingStatus.PROCESSED
    assert harness.sleep.delays == [2.0]
    assert result.report.failed == 3


def test_rerun_only_touches_failed_emails() -> None:
    first = Harness(QuotaExceededError("quota"))
    emails = [_newsletter("n1"), _plain("1"), _plain("2")]
    after_first = first.run(emails).emails
    assert _by_id(after_first)["1"].processing_status is ProcessingStatus.FAILED

    second = Harness()
    result = second.run(list(after_first))

    assert second.classifier.batches == [["1", "2"]]
    assert result.emails[0] == after_first[0]
    assert result.report.selected == 2
    assert result.report.success


def test_failed_and_pending_emails_are_both_selected() -> None:
    harness = Harness()
    emails = [
        _plain("1", processing_status=ProcessingStatus.FAILED),
        _plain("2"),
        _plain(
            "3",
            processing_status=ProcessingStatus.PROCESSED,
            category=EmailCategory.IMPORTANT,
        ),
    ]

    result = harness.run(emails)

    assert harness.classifier.batches == [["1", "2"]]
    assert _by_id(result.emails)["3"] == emails[2]


def test_nothing_to_do_is_a_no_op() -> None:
    harness = Harness()
    emails = [
        _plain(
            "1",
            processing_status=ProcessingStatus.PROCESSED,
            category=EmailCategory.OTHERS,
        )
    ]

    result = harness.run(emails)

    assert result.emails == tuple(emails)
    assert result.report.outcome is IngestionOutcome.NOTHING_TO_DO
    assert result.report.success
    assert harness.classifier.batches == []
    assert harness.snapshots == []
    notifications = harness.feed.drain()
    assert [note.message for note in notifications] == [
        "All emails are already processed!"
    ]
    assert notifications[0].kind is NotificationKind.SUCCESS


def test_triage_snapshot_is_published_before_the_first_batch() -> None:
    harness = Harness()

    harness.run([_newsletter("n1"), _plain("1")])

    assert harness.events[0] == ("snapshot", 1)
    assert harness.events[1] == ("classify", ("1",))
    first = _by_id(harness.snapshots[0])
    assert first["n1"].processing_status is ProcessingStatus.PROCESSED
    assert first["1"].processing_status is ProcessingStatus.PROCESSING
    final = _by_id(harness.snapshots[-1])
    assert final["1"].processing_status is ProcessingStatus.PROCESSED


def test_low_confidence_triage_is_deferred() -> None:
    harness = Harness()
    contract = _plain("1", body="Please review the attached contract.")

    result = harness.run([contract])

    assert harness.classifier.batches == [["1"]]
    assert result.emails[0].category is EmailCategory.TODO


def test_input_collection_is_not_mutated() -> None:
    harness = Harness()
    emails = [_plain("1"), _newsletter("2")]
    original = list(emails)

    harness.run(emails)

    assert emails == original
    assert all(email.processing_status is ProcessingStatus.PENDING for email in emails)


class BlockingClassifier:
    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def classify_batch(self, emails, categorization_prompt, action_prompt):
        self.started.set()
        await self.release.wait()
        return {}


def test_concurrent_run_is_rejected() -> None:
    async def scenario() -> None:
        classifier = BlockingClassifier()
        orchestrator = IngestionOrchestrator(classifier)
        first = asyncio.create_task(orchestrator.run([_plain("1")]))
        await classifier.started.wait()

        assert orchestrator.is_running
        with pytest.raises(IngestionAlreadyRunningError):
            await orchestrator.run([_plain("2")])

        classifier.release.set()
        result = await first
        assert result.emails[0].category is EmailCategory.OTHERS
        assert not orchestrator.is_running

    asyncio.run(scenario())


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        IngestionOrchestrator(StubClassifier([]), batch_size=0)


def test_from_settings_applies_ingestion_settings() -> None:
    settings = AppSettings(
        ingestion=IngestionSettings(batch_size=2, inter_batch_delay_seconds=0.0)
    )
    events: list[tuple] = []
    classifier = StubClassifier(events)

    orchestrator = IngestionOrchestrator.from_settings(settings, classifier=classifier)
    result = asyncio.run(orchestrator.run([_plain(str(n)) for n in range(1, 4)]))

    assert classifier.batches == [["1", "2"], ["3"]]
    assert result.report.batches == 2


def test_from_settings_logs_notifications_by_default(
    caplog: pytest.LogCaptureFixture,
) -> None:
    settings = AppSettings(
        ingestion=IngestionSettings(
            quota_cooldown_seconds=0.0, inter_batch_delay_seconds=0.0
        )
    )
    classifier = StubClassifier([], QuotaExceededError("quota"))
    orchestrator = IngestionOrchestrator.from_settings(settings, classifier=classifier)

    with caplog.at_level(logging.INFO, logger="inbox_triage.core.notifications"):
        asyncio.run(orchestrator.run([_plain("1")]))

    notices = [
        (record.levelno, record.getMessage())
        for record in caplog.records
        if record.name == "inbox_triage.core.notifications"
    ]
    assert notices == [
        (logging.WARNING, "API limit reached. Pausing for 0 seconds..."),
        (logging.WARNING, "Completed with 1 failure(s), re-run to retry."),
    ]
