"""Core utilities for configuration, logging, and shared models."""

from .config import AppSettings, IngestionSettings, LlmSettings, load_app_settings
from .logging import configure_logging
from .notifications import (
    LoggingNotificationSink,
    Notification,
    NotificationFeed,
    NotificationKind,
    NotificationSink,
)

__all__ = [
    "AppSettings",
    "IngestionSettings",
    "LlmSettings",
    "LoggingNotificationSink",
    "Notification",
    "NotificationFeed",
    "NotificationKind",
    "NotificationSink",
    "configure_logging",
    "load_app_settings",
]
