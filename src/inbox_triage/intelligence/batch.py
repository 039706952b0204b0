"""Batch classification of emails through a single LLM call."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Sequence
from typing import Any

from inbox_triage.core.models import (
    CLASSIFIABLE_CATEGORIES,
    ActionItem,
    ClassificationResult,
    Email,
    EmailCategory,
)

from .llm import LLMClient, LLMError, QuotaExceededError
from .prompts import DEFAULT_BODY_CHAR_LIMIT, build_batch_prompt
from .retry import Sleep, with_retry

LOGGER = logging.getLogger(__name__)

BATCH_SIZE = 3

_CATEGORY_LOOKUP: dict[str, EmailCategory] = {
    category.value.lower(): category for category in CLASSIFIABLE_CATEGORIES
}
_EMPTY_DEADLINES = frozenset({"", "none", "null", "n/a"})


class BatchClassifier:
    """Classify up to ``BATCH_SIZE`` emails per request with retries."""

    def __init__(
        self,
        llm_client: LLMClient,
        *,
        body_char_limit: int = DEFAULT_BODY_CHAR_LIMIT,
        retries: int = 3,
        retry_initial_delay: float = 2.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Prepare the classifier around an LLM client."""
        self._llm_client = llm_client
        self._body_char_limit = body_char_limit
        self._retries = retries
        self._retry_initial_delay = retry_initial_delay
        self._sleep = sleep

    async def classify_batch(
        self,
        emails: Sequence[Email],
        categorization_prompt: str,
        action_prompt: str,
    ) -> dict[str, ClassificationResult]:
        """Return results keyed by email id.

        Ids the provider did not answer for are simply absent. Any failure
        other than quota exhaustion is logged and yields an empty mapping;
        :class:`QuotaExceededError` propagates to the caller.
        """
        if not emails:
            return {}

        prompt = build_batch_prompt(
            emails,
            categorization_prompt=categorization_prompt,
            action_prompt=action_prompt,
            body_char_limit=self._body_char_limit,
        )
        expected_ids = {email.id for email in emails}

        async def _call() -> dict[str, ClassificationResult]:
            raw_output = await self._llm_client.generate(prompt)
            return _parse_batch_output(raw_output, expected_ids)

        try:
            return await with_retry(
                _call,
                retries=self._retries,
                initial_delay=self._retry_initial_delay,
                sleep=self._sleep,
            )
        except QuotaExceededError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            LOGGER.error(
                "Batch classification failed for ids %s: %s",
                ", ".join(email.id for email in emails),
                exc,
            )
            return {}


def normalize_category(label: object) -> EmailCategory:
    """Match ``label`` case-insensitively to a classifiable category."""
    if not isinstance(label, str):
        return EmailCategory.OTHERS
    return _CATEGORY_LOOKUP.get(label.strip().lower(), EmailCategory.OTHERS)


def normalize_action_items(raw_tasks: object) -> tuple[ActionItem, ...]:
    """Convert the provider's task list into action items, dropping blanks."""
    if not isinstance(raw_tasks, list):
        return ()
    items: list[ActionItem] = []
    for raw in raw_tasks:
        if not isinstance(raw, dict):
            continue
        task = raw.get("task")
        if not isinstance(task, str) or not task.strip():
            continue
        items.append(
            ActionItem(task=task.strip(), deadline=_clean_deadline(raw.get("deadline")))
        )
    return tuple(items)


def _clean_deadline(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if cleaned.lower() in _EMPTY_DEADLINES:
        return None
    return cleaned


def _parse_batch_output(
    raw: str, expected_ids: set[str]
) -> dict[str, ClassificationResult]:
    try:
        payload: Any = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LLMError("Batch output was not valid JSON") from exc

    if isinstance(payload, dict):
        payload = payload.get("results")
    if not isinstance(payload, list):
        raise LLMError("Batch output must be a JSON array of results")

    results: dict[str, ClassificationResult] = {}
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        email_id = entry.get("id")
        if email_id is None:
            continue
        email_id = str(email_id)
        if email_id not in expected_ids:
            LOGGER.debug("Ignoring result for unknown id %s", email_id)
            continue
        category = normalize_category(entry.get("category"))
        LOGGER.debug(
            "Classified id=%s category=%s reasoning=%s",
            email_id,
            category.value,
            entry.get("reasoning"),
        )
        results[email_id] = ClassificationResult(
            category=category,
            action_items=normalize_action_items(entry.get("tasks")),
        )
    return results


__all__ = [
    "BATCH_SIZE",
    "BatchClassifier",
    "normalize_action_items",
    "normalize_category",
]
