"""Datetime helpers shared by the recurrence and query modules.

All instants handled by the engine are timezone-aware. Naive values coming
from storage or query strings are treated as UTC; wall-clock and date-only
arithmetic happens in the single project-wide zone.
"""

import logging
import os
from datetime import UTC, date, datetime, timedelta, tzinfo
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_TIMEZONE = "UTC"


def ensure_timezone_aware(dt: datetime) -> datetime:
    """Ensure datetime is timezone-aware.

    Args:
        dt: Datetime to make timezone-aware

    Returns:
        Timezone-aware datetime (UTC if originally naive)
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def to_utc(dt: datetime) -> datetime:
    """Convert a datetime to UTC, assuming UTC for naive values."""
    return ensure_timezone_aware(dt).astimezone(UTC)


@lru_cache(maxsize=32)
def get_zone(name: str) -> tzinfo:
    """Resolve an IANA zone name, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown project timezone %r, using UTC", name)
        return UTC


def to_local_naive(dt: datetime, zone: tzinfo) -> datetime:
    """Express an instant as a naive wall-clock datetime in ``zone``."""
    return ensure_timezone_aware(dt).astimezone(zone).replace(tzinfo=None)


def from_local_naive(wall: datetime, zone: tzinfo) -> datetime:
    """Attach ``zone`` to a wall-clock datetime and convert it to UTC."""
    return wall.replace(tzinfo=zone).astimezone(UTC)


def local_date(dt: datetime, zone: tzinfo) -> date:
    """Calendar date of an instant in ``zone``."""
    return ensure_timezone_aware(dt).astimezone(zone).date()


def parse_instant(value: str) -> datetime:
    """Parse an ISO-8601 instant (extended or basic form) into aware UTC.

    Accepts ``2024-01-01T09:00:00Z``, ``2024-01-01T09:00:00+07:00``,
    ``20240101T090000Z`` and date-only ``2024-01-01``. Values without an
    offset are UTC.

    Raises:
        ValueError: If the value is empty or not an ISO-8601 instant
    """
    if not value or not value.strip():
        raise ValueError("Empty datetime value")
    parsed = date_parser.isoparse(value.strip())
    return to_utc(parsed)


def serialize_datetime_utc(dt: datetime) -> str:
    """Serialize datetime to ISO 8601 UTC string with Z suffix.

    Examples:
        >>> serialize_datetime_utc(datetime(2024, 11, 4, 16, 30, tzinfo=UTC))
        '2024-11-04T16:30:00Z'
    """
    return to_utc(dt).isoformat().replace("+00:00", "Z")


def serialize_datetime_optional(dt: Optional[datetime]) -> Optional[str]:
    """Serialize optional datetime, returning None if input is None."""
    return serialize_datetime_utc(dt) if dt is not None else None


def duration_between(start: datetime, end: Optional[datetime]) -> timedelta:
    """Duration of an interval; zero when there is no end."""
    if end is None:
        return timedelta(0)
    return max(to_utc(end) - to_utc(start), timedelta(0))


def now_utc() -> datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the AGENCYCAL_TEST_TIME environment
    variable (ISO 8601, e.g. "2024-01-15T09:00:00Z").
    """
    test_time = os.environ.get("AGENCYCAL_TEST_TIME")
    if test_time:
        try:
            return parse_instant(test_time)
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse AGENCYCAL_TEST_TIME=%r: %s", test_time, e)
    return datetime.now(UTC)
