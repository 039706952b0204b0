"""Exponential backoff for flaky asynchronous calls.

Quota exhaustion is never retried here. It surfaces as
:class:`QuotaExceededError` and the caller picks the cool-down.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from functools import wraps
from typing import ParamSpec, TypeVar

from .llm import QuotaExceededError, TransientLLMError, is_quota_message

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")

Sleep = Callable[[float], Awaitable[None]]

BACKOFF_FACTOR = 2


class FailureKind(str, Enum):
    """How the retry policy treats an exception."""

    TRANSIENT = "transient"
    QUOTA_EXCEEDED = "quota_exceeded"
    OTHER = "other"


def classify_failure(error: BaseException) -> FailureKind:
    """Map an exception onto the retry taxonomy.

    Typed client errors are trusted as-is; anything else is inspected for
    the quota markers providers put in their error text.
    """
    if isinstance(error, QuotaExceededError):
        return FailureKind.QUOTA_EXCEEDED
    if isinstance(error, TransientLLMError):
        return FailureKind.TRANSIENT
    text = str(error)
    if "429" in text or is_quota_message(text) or "exhausted" in text.lower():
        return FailureKind.QUOTA_EXCEEDED
    return FailureKind.OTHER


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    initial_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Await ``operation``, retrying non-quota failures with doubling delays."""
    if retries < 0:
        raise ValueError("retries must not be negative")
    remaining = retries
    delay = initial_delay
    while True:
        try:
            return await operation()
        except Exception as exc:  # pylint: disable=broad-except
            kind = classify_failure(exc)
            if kind is FailureKind.QUOTA_EXCEEDED:
                LOGGER.warning("Quota exhausted, not retrying: %s", exc)
                if isinstance(exc, QuotaExceededError):
                    raise
                raise QuotaExceededError(str(exc)) from exc
            if remaining <= 0:
                raise
            LOGGER.warning(
                "Call failed (%s: %s), retrying in %.1fs (%d attempt(s) left)",
                kind.value,
                exc,
                delay,
                remaining,
            )
            await sleep(delay)
            remaining -= 1
            delay *= BACKOFF_FACTOR


def retrying(
    *,
    retries: int = 3,
    initial_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator form of :func:`with_retry` for coroutine functions."""

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await with_retry(
                lambda: func(*args, **kwargs),
                retries=retries,
                initial_delay=initial_delay,
                sleep=sleep,
            )

        return wrapper

    return decorator


__all__ = ["FailureKind", "classify_failure", "retrying", "with_retry"]
