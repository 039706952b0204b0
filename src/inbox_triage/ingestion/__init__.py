"""Ingestion pipeline components."""

from .orchestrator import (
    IngestionAlreadyRunningError,
    IngestionOrchestrator,
    IngestionOutcome,
    IngestionReport,
    IngestionResult,
)
from .records import (
    RecordError,
    dump_emails,
    load_emails,
    parse_email_record,
    parse_email_records,
    serialize_email,
)

__all__ = [
    "IngestionAlreadyRunningError",
    "IngestionOrchestrator",
    "IngestionOutcome",
    "IngestionReport",
    "IngestionResult",
    "RecordError",
    "dump_emails",
    "load_emails",
    "parse_email_record",
    "parse_email_records",
    "serialize_email",
]
