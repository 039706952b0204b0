"""Transient user-facing notifications emitted during ingestion."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

LOGGER = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    """Severity of a notification."""

    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True, slots=True)
class Notification:
    """Short message meant to be shown to the user once."""

    message: str
    kind: NotificationKind


class NotificationSink(Protocol):
    """Receives notifications published by the pipeline."""

    def notify(self, notification: Notification) -> None:
        """Deliver ``notification`` to the user-visible channel."""
        raise NotImplementedError


class LoggingNotificationSink:
    """Sink that writes notifications to the application log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or LOGGER

    def notify(self, notification: Notification) -> None:
        level = (
            logging.WARNING
            if notification.kind is NotificationKind.ERROR
            else logging.INFO
        )
        self._logger.log(level, "%s", notification.message)


class NotificationFeed:
    """Bounded in-memory feed that consumers drain periodically."""

    def __init__(self, max_items: int = 50) -> None:
        if max_items <= 0:
            raise ValueError("max_items must be positive")
        self._items: deque[Notification] = deque(maxlen=max_items)
        self._lock = threading.Lock()

    def notify(self, notification: Notification) -> None:
        with self._lock:
            self._items.append(notification)

    def drain(self) -> list[Notification]:
        """Return pending notifications oldest first and clear the feed."""
        with self._lock:
            items = list(self._items)
            self._items.clear()
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


__all__ = [
    "LoggingNotificationSink",
    "Notification",
    "NotificationFeed",
    "NotificationKind",
    "NotificationSink",
]
