"""Core domain models used across the application."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class EmailCategory(str, Enum):
    """Closed set of categories an email can be filed under."""

    IMPORTANT = "Important"
    NEWSLETTER = "Newsletter"
    SPAM = "Spam"
    TODO = "To-Do"
    OTHERS = "Others"
    UNCATEGORIZED = "Uncategorized"
    TRASH = "Trash"


# Labels the external classifier is allowed to return.
CLASSIFIABLE_CATEGORIES: tuple[EmailCategory, ...] = (
    EmailCategory.IMPORTANT,
    EmailCategory.NEWSLETTER,
    EmailCategory.SPAM,
    EmailCategory.TODO,
    EmailCategory.OTHERS,
)


class ProcessingStatus(str, Enum):
    """Per-email position in the ingestion state machine."""

    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ActionItem:
    """Follow-up obligation extracted from an email."""

    task: str
    deadline: str | None = None


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class Email:
    """Inbound email together with its classification state."""

    id: str
    sender: str
    sender_email: str
    subject: str
    body: str
    timestamp: datetime | None = None
    is_read: bool = False
    category: EmailCategory | str = EmailCategory.UNCATEGORIZED
    action_items: tuple[ActionItem, ...] = ()
    processing_status: ProcessingStatus = ProcessingStatus.PENDING


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    """Category and action items returned by the classifier for one email."""

    category: EmailCategory
    action_items: tuple[ActionItem, ...] = ()


@dataclass(frozen=True, slots=True)
class TriageResult:
    """Outcome of the local heuristic pass."""

    category: EmailCategory | None
    confidence: float


def count_by_category(emails: Iterable[Email]) -> dict[EmailCategory, int]:
    """Count emails per known category; ad-hoc string categories are skipped."""
    counts = {category: 0 for category in EmailCategory}
    for email in emails:
        if isinstance(email.category, EmailCategory):
            counts[email.category] += 1
    return counts


__all__ = [
    "ActionItem",
    "CLASSIFIABLE_CATEGORIES",
    "ClassificationResult",
    "Email",
    "EmailCategory",
    "ProcessingStatus",
    "TriageResult",
    "count_by_category",
]
