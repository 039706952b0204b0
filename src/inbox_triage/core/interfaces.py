"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol

from .models import ClassificationResult, Email, TriageResult


class ClassificationService(Protocol):
    """Classifies a small batch of emails with one external call."""

    async def classify_batch(
        self,
        emails: Sequence[Email],
        categorization_prompt: str,
        action_prompt: str,
    ) -> Mapping[str, ClassificationResult]:
        """Return results keyed by email id for the ids the service answered."""
        raise NotImplementedError


class TriageFunction(Protocol):
    """Local heuristic that guesses a category without I/O."""

    def __call__(self, email: Email) -> TriageResult:
        raise NotImplementedError


class SnapshotListener(Protocol):
    """Receives the full email collection after each pipeline phase."""

    def __call__(self, emails: tuple[Email, ...]) -> None:
        raise NotImplementedError


__all__ = ["ClassificationService", "SnapshotListener", "TriageFunction"]
