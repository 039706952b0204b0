"""Conversion between JSON email records and :class:`Email` models.

Records use the camelCase shape shared with inbox front-ends::

    {"id": "1", "sender": "Alice", "senderEmail": "alice@example.com",
     "subject": "...", "body": "...", "timestamp": "2023-10-23T09:30:00Z",
     "isRead": false, "category": "Uncategorized",
     "actionItems": [{"task": "...", "deadline": "Friday"}],
     "processingStatus": "pending"}
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.models import ActionItem, Email, EmailCategory, ProcessingStatus


class RecordError(ValueError):
    """Raised when an email record cannot be converted."""


def parse_email_record(record: Mapping[str, Any]) -> Email:
    """Build an :class:`Email` from one JSON record."""
    email_id = record.get("id")
    if email_id is None or str(email_id) == "":
        raise RecordError("Email record is missing an 'id'")

    status_raw = record.get("processingStatus") or ProcessingStatus.PENDING.value
    try:
        status = ProcessingStatus(status_raw)
    except ValueError as exc:
        raise RecordError(
            f"Email {email_id} has unknown processingStatus {status_raw!r}"
        ) from exc

    return Email(
        id=str(email_id),
        sender=str(record.get("sender") or ""),
        sender_email=str(record.get("senderEmail") or ""),
        subject=str(record.get("subject") or ""),
        body=str(record.get("body") or ""),
        timestamp=_parse_timestamp(record.get("timestamp"), email_id),
        is_read=_parse_is_read(record.get("isRead"), email_id),
        category=_parse_category(record.get("category")),
        action_items=_parse_action_items(record.get("actionItems")),
        processing_status=status,
    )


def serialize_email(email: Email) -> dict[str, Any]:
    """Return the JSON record for ``email``."""
    category = email.category
    return {
        "id": email.id,
        "sender": email.sender,
        "senderEmail": email.sender_email,
        "subject": email.subject,
        "body": email.body,
        "timestamp": email.timestamp.isoformat() if email.timestamp else None,
        "isRead": email.is_read,
        "category": category.value if isinstance(category, EmailCategory) else category,
        "actionItems": [
            {"task": item.task, "deadline": item.deadline}
            for item in email.action_items
        ],
        "processingStatus": email.processing_status.value,
    }


def parse_email_records(records: Iterable[Mapping[str, Any]]) -> tuple[Email, ...]:
    """Parse a sequence of records, rejecting duplicate ids."""
    emails: list[Email] = []
    seen: set[str] = set()
    for record in records:
        if not isinstance(record, Mapping):
            raise RecordError("Each email record must be a JSON object")
        email = parse_email_record(record)
        if email.id in seen:
            raise RecordError(f"Duplicate email id {email.id!r}")
        seen.add(email.id)
        emails.append(email)
    return tuple(emails)


def load_emails(path: Path | str) -> tuple[Email, ...]:
    """Read a JSON array of email records from ``path``."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise RecordError(f"{path} is not valid JSON") from exc
    if not isinstance(payload, list):
        raise RecordError(f"{path} must contain a JSON array of email records")
    return parse_email_records(payload)


def dump_emails(path: Path | str, emails: Iterable[Email]) -> None:
    """Write ``emails`` to ``path`` as a JSON array of records."""
    records = [serialize_email(email) for email in emails]
    Path(path).write_text(
        json.dumps(records, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )


def _parse_is_read(value: Any, email_id: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise RecordError(f"Email {email_id} has a non-boolean isRead {value!r}")
    return value


def _parse_category(value: Any) -> EmailCategory | str:
    if value is None or value == "":
        return EmailCategory.UNCATEGORIZED
    try:
        return EmailCategory(value)
    except ValueError:
        # Ad-hoc labels such as "Sent" belong to synthetic views.
        return str(value)


def _parse_action_items(value: Any) -> tuple[ActionItem, ...]:
    if not value:
        return ()
    if not isinstance(value, list):
        raise RecordError("'actionItems' must be a list")
    items: list[ActionItem] = []
    for entry in value:
        if not isinstance(entry, Mapping) or not isinstance(entry.get("task"), str):
            raise RecordError("Each action item needs a 'task' string")
        deadline = entry.get("deadline")
        items.append(
            ActionItem(
                task=entry["task"],
                deadline=str(deadline) if deadline is not None else None,
            )
        )
    return tuple(items)


def _try_parse_datetime(value: str) -> datetime | None:
    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(normalized)
    except ValueError:
        return None


def _parse_timestamp(value: Any, email_id: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise RecordError(f"Email {email_id} has a non-string timestamp")
    parsed = _try_parse_datetime(value)
    if parsed is None:
        raise RecordError(f"Email {email_id} has an invalid timestamp {value!r}")
    return parsed


__all__ = [
    "RecordError",
    "dump_emails",
    "load_emails",
    "parse_email_record",
    "parse_email_records",
    "serialize_email",
]
