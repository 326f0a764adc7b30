"""
UTC timestamp utilities for Schema Migrator.

All timestamps MUST be in UTC with explicit timezone markers.

This module provides:
- utc_now(): Current time as timezone-aware datetime
- utc_timestamp(): ISO 8601 timestamp string with 'Z' suffix
- parse_timestamp(): Parse a tracking-table timestamp to datetime
- to_milliseconds(): Duration to whole milliseconds for storage

Examples:
    >>> from schema_migrator.utils.time import utc_now, utc_timestamp
    >>> now = utc_now()
    >>> now.tzinfo
    datetime.timezone.utc
    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
"""

from datetime import UTC, datetime, timedelta

# SQLite's CURRENT_TIMESTAMP default, used when a row was inserted without applied_at
SQLITE_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    Returns:
        datetime: Current UTC time with tzinfo=timezone.utc

    Note:
        NEVER use datetime.now() without timezone parameter.
        NEVER use datetime.utcnow() (deprecated, returns naive datetime).
    """
    return datetime.now(UTC)


def utc_timestamp(dt: datetime | None = None) -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ
    This is the format written to the applied_at column of the tracking table.

    Args:
        dt: Optional timezone-aware datetime. If None, uses utc_now().

    Returns:
        str: ISO 8601 formatted timestamp in UTC

    Raises:
        ValueError: If dt is naive
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError(
            "Datetime must be timezone-aware (use timezone.utc). "
            "Got naive datetime. Use utc_now() or ensure dt has tzinfo set."
        )

    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse a tracking-table timestamp to a timezone-aware UTC datetime.

    Accepts the engine's own format (YYYY-MM-DDTHH:MM:SSZ) and SQLite's
    CURRENT_TIMESTAMP format (YYYY-MM-DD HH:MM:SS, always UTC).

    Args:
        timestamp_str: Timestamp string from the database

    Returns:
        datetime: Timezone-aware datetime in UTC

    Raises:
        ValueError: If the string matches neither format

    Examples:
        >>> parse_timestamp('2025-11-02T08:30:45Z').year
        2025
        >>> parse_timestamp('2025-11-02 08:30:45').tzinfo == UTC
        True
        >>> parse_timestamp('invalid')
        Traceback (most recent call last):
        ...
        ValueError: Invalid timestamp format: invalid
    """
    if timestamp_str.endswith("Z"):
        try:
            return datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e

    try:
        return datetime.strptime(timestamp_str, SQLITE_TIMESTAMP_FORMAT).replace(
            tzinfo=UTC
        )
    except ValueError as e:
        raise ValueError(f"Invalid timestamp format: {timestamp_str}") from e


def to_milliseconds(duration: timedelta) -> int:
    """Convert a duration to whole milliseconds (truncating)."""
    return int(duration / timedelta(milliseconds=1))
