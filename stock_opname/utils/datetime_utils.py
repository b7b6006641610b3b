"""
Common date/time helpers.

Storage: updated_at is stamped in UTC by the server.
Wire: timestamps travel as ISO 8601 strings; clients parse them back to
tz-aware UTC before comparing row versions.
"""

from datetime import datetime, timezone


def as_utc(dt: datetime) -> datetime:
    """
    Convert dt to tz-aware UTC.
    If dt is naive, we treat it as UTC (SQLite drops the offset on read).

    Args:
        dt: datetime object (naive or timezone-aware)

    Returns:
        datetime object in UTC timezone
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def parse_iso_string(iso_string: str) -> datetime:
    """
    Parse an ISO 8601 string to UTC datetime.
    Handles both with and without 'Z' suffix.

    Args:
        iso_string: ISO 8601 string (e.g., "2024-12-28T10:30:00.000Z" or "2024-12-28T10:30:00+00:00")

    Returns:
        datetime object in UTC timezone
    """
    # Replace 'Z' with '+00:00' for consistent parsing
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"

    dt = datetime.fromisoformat(iso_string)
    return as_utc(dt)
