"""Common helper functions for ledger modules."""

import uuid
from datetime import UTC, datetime


def now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def generate_id() -> str:
    """Generate a unique ID (UUID4 hex)."""
    return uuid.uuid4().hex


def ensure_utc(value: datetime | None) -> datetime | None:
    """Re-attach UTC to naive datetimes read back from SQLite.

    SQLite has no timezone-aware type: values written as aware UTC come
    back naive. PostgreSQL returns them aware and they pass through.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)
