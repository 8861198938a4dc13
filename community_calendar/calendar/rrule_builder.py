"""Build RRULE strings from the simple recurrence options offered to authors."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..core.timezone_utils import ensure_utc, to_local, to_local_parts
from .models import RecurrenceType

DAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


def format_until(until: datetime) -> str:
    """Format an UNTIL value; RFC 5545 requires UTC when DTSTART has a zone."""
    return ensure_utc(until).strftime("%Y%m%dT%H%M%SZ")


def build_rrule_string(
    recurrence_type: RecurrenceType | str,
    start_at: datetime,
    weekdays: Optional[list[int]] = None,
    until: Optional[datetime] = None,
    offset_hours: Optional[int] = None,
) -> str:
    """Build an RRULE string anchored on the community-local date of ``start_at``.

    Args:
        recurrence_type: daily, weekly, monthly or yearly
        start_at: Event start instant (UTC)
        weekdays: Weekly days, 0=Monday .. 6=Sunday. Defaults to the local
            weekday of ``start_at``.
        until: Optional series end instant
        offset_hours: Community offset override

    Returns:
        RRULE string such as "FREQ=WEEKLY;BYDAY=MO,TH"

    Raises:
        ValueError: For ``none`` or unknown recurrence types
    """
    rtype = RecurrenceType(recurrence_type)
    local = to_local_parts(start_at, offset_hours)
    parts: list[str] = []

    if rtype == RecurrenceType.DAILY:
        parts.append("FREQ=DAILY")
    elif rtype == RecurrenceType.WEEKLY:
        days = weekdays or [to_local(start_at, offset_hours).weekday()]
        by_day = ",".join(DAY_CODES[d] for d in sorted(set(days)))
        parts.extend(["FREQ=WEEKLY", f"BYDAY={by_day}"])
    elif rtype == RecurrenceType.MONTHLY:
        parts.extend(["FREQ=MONTHLY", f"BYMONTHDAY={local.day}"])
    elif rtype == RecurrenceType.YEARLY:
        parts.extend(["FREQ=YEARLY", f"BYMONTH={local.month}", f"BYMONTHDAY={local.day}"])
    else:
        raise ValueError("Cannot build a recurrence rule for a non-recurring event")

    if until is not None:
        parts.append(f"UNTIL={format_until(until)}")

    return ";".join(parts)
