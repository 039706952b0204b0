"""In-memory holder for the current email collection."""

from __future__ import annotations

import threading
from collections.abc import Iterable

from inbox_triage.core.models import (
    Email,
    EmailCategory,
    ProcessingStatus,
    count_by_category,
)


class InMemoryEmailStore:
    """Keep the latest immutable snapshot of the inbox.

    Snapshots are replaced wholesale, so readers never observe a collection
    that is half way through an update.
    """

    def __init__(self, emails: Iterable[Email] = ()) -> None:
        self._lock = threading.Lock()
        self._emails: tuple[Email, ...] = tuple(emails)

    def snapshot(self) -> tuple[Email, ...]:
        """Return the current collection."""
        with self._lock:
            return self._emails

    def replace(self, emails: Iterable[Email]) -> None:
        """Swap in a new collection."""
        new_snapshot = tuple(emails)
        with self._lock:
            self._emails = new_snapshot

    # Lets the store be passed directly as an orchestrator snapshot listener.
    __call__ = replace

    def get(self, email_id: str) -> Email | None:
        for email in self.snapshot():
            if email.id == email_id:
                return email
        return None

    def filter(
        self,
        *,
        category: EmailCategory | str | None = None,
        status: ProcessingStatus | None = None,
    ) -> list[Email]:
        """Return emails matching the optional category and status."""
        selected: list[Email] = []
        for email in self.snapshot():
            if category is not None and email.category != category:
                continue
            if status is not None and email.processing_status is not status:
                continue
            selected.append(email)
        return selected

    def category_counts(self) -> dict[EmailCategory, int]:
        return count_by_category(self.snapshot())

    def __len__(self) -> int:
        return len(self.snapshot())


__all__ = ["InMemoryEmailStore"]
