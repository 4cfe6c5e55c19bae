"""Timestamp utilities for UTC handling and database storage.

Timestamps are kept timezone-aware in UTC everywhere in the core and are
stored in the database as ISO 8601 strings with an explicit ``Z`` suffix.
"""

from datetime import datetime, timezone
from typing import Optional

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Example:
        >>> utc_now().tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware ones are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_storage(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime for a string timestamp column.

    Example:
        >>> to_storage(datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc))
        '2026-03-01T09:30:00.000000Z'
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return None
    return dt_utc.strftime(STORAGE_FORMAT)


def from_storage(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp string back to an aware UTC datetime.

    Accepts values with or without microseconds. Empty values map to None.
    """
    if not value:
        return None

    cleaned = value.rstrip("Z")
    try:
        dt = datetime.strptime(cleaned, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(cleaned, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)
