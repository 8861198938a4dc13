"""Community-local time conversion and current-time provider.

The community lives in a single fixed UTC offset (UTC+3 by default, no DST).
Instants are stored in UTC; grouping and display use civil ``YYYY-MM-DD``
strings in the community offset, which sort lexicographically in
chronological order.
"""

from __future__ import annotations

import datetime
import logging
import os
from typing import NamedTuple, Optional

logger = logging.getLogger(__name__)

DEFAULT_COMMUNITY_OFFSET_HOURS = 3

TEST_TIME_ENV = "COMMUNITY_TEST_TIME"

_offset_hours = DEFAULT_COMMUNITY_OFFSET_HOURS


class LocalParts(NamedTuple):
    """Community-local calendar components of an instant (month is 1-based)."""

    year: int
    month: int
    day: int
    hours: int
    minutes: int


def set_community_offset(offset_hours: int) -> None:
    """Set the process-wide community offset used when callers pass no offset."""
    global _offset_hours
    _offset_hours = int(offset_hours)
    logger.debug("Community UTC offset set to %+d hours", _offset_hours)


def get_community_offset() -> int:
    """Return the configured community offset in hours."""
    return _offset_hours


def community_tz(offset_hours: Optional[int] = None) -> datetime.timezone:
    """Return the fixed-offset tzinfo for community-local time."""
    hours = _offset_hours if offset_hours is None else offset_hours
    return datetime.timezone(datetime.timedelta(hours=hours))


def ensure_utc(instant: datetime.datetime) -> datetime.datetime:
    """Return ``instant`` as an aware UTC datetime; naive values are taken as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=datetime.timezone.utc)
    return instant.astimezone(datetime.timezone.utc)


def to_local(instant: datetime.datetime, offset_hours: Optional[int] = None) -> datetime.datetime:
    """Convert an instant to an aware datetime in community-local time."""
    return ensure_utc(instant).astimezone(community_tz(offset_hours))


def to_local_date(instant: datetime.datetime, offset_hours: Optional[int] = None) -> datetime.date:
    """Civil date of ``instant`` in community-local time."""
    return to_local(instant, offset_hours).date()


def to_local_date_str(instant: datetime.datetime, offset_hours: Optional[int] = None) -> str:
    """Convert a UTC instant to a ``YYYY-MM-DD`` string in community-local time.

    Used as the grouping key for agenda views and as the comparison key for
    window boundaries.
    """
    return to_local_date(instant, offset_hours).isoformat()


def to_local_parts(instant: datetime.datetime, offset_hours: Optional[int] = None) -> LocalParts:
    """Return the community-local calendar components of ``instant``."""
    local = to_local(instant, offset_hours)
    return LocalParts(local.year, local.month, local.day, local.hour, local.minute)


def local_midnight_utc(day: datetime.date, offset_hours: Optional[int] = None) -> datetime.datetime:
    """UTC instant at which the community-local ``day`` begins."""
    local_midnight = datetime.datetime.combine(day, datetime.time(0, 0), tzinfo=community_tz(offset_hours))
    return local_midnight.astimezone(datetime.timezone.utc)


def start_of_local_day(instant: datetime.datetime, offset_hours: Optional[int] = None) -> datetime.datetime:
    """UTC instant of local midnight of the day containing ``instant``."""
    return local_midnight_utc(to_local_date(instant, offset_hours), offset_hours)


def month_window(
    year: int, month: int, offset_hours: Optional[int] = None
) -> tuple[datetime.datetime, datetime.datetime]:
    """Half-open UTC window covering a community-local calendar month."""
    first = datetime.date(year, month, 1)
    following = datetime.date(year + 1, 1, 1) if month == 12 else datetime.date(year, month + 1, 1)
    return local_midnight_utc(first, offset_hours), local_midnight_utc(following, offset_hours)


def window_civil_bounds(
    window_start: datetime.datetime,
    window_end: datetime.datetime,
    offset_hours: Optional[int] = None,
) -> tuple[datetime.date, datetime.date]:
    """Inclusive civil-date range covered by the half-open window ``[start, end)``."""
    first = to_local_date(window_start, offset_hours)
    last = to_local_date(ensure_utc(window_end) - datetime.timedelta(microseconds=1), offset_hours)
    return first, last


def serialize_iso(dt: Optional[datetime.datetime]) -> Optional[str]:
    """Serialize an instant to ISO-8601 UTC with a trailing ``Z``."""
    if dt is None:
        return None
    return ensure_utc(dt).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class TimeProvider:
    """Provides the current time with test time override support."""

    def __init__(self, env_var: str = TEST_TIME_ENV):
        self.env_var = env_var

    def now_utc(self) -> datetime.datetime:
        """Return current UTC time with tzinfo.

        Can be overridden via the COMMUNITY_TEST_TIME environment variable
        (ISO 8601, e.g. "2024-06-10T09:00:00+03:00"). Naive values are UTC.
        """
        test_time = os.environ.get(self.env_var)
        if test_time:
            try:
                from dateutil import parser as date_parser

                return ensure_utc(date_parser.isoparse(test_time))
            except (ValueError, OverflowError) as e:
                logger.warning("Failed to parse %s=%r: %s", self.env_var, test_time, e)

        return datetime.datetime.now(datetime.timezone.utc)


_time_provider = TimeProvider()


def now_utc() -> datetime.datetime:
    """Get current UTC time (convenience function).

    Returns:
        Current time in UTC
    """
    return _time_provider.now_utc()
