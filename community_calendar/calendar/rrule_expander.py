"""Recurrence rule parsing and occurrence expansion for community events.

Rules follow the iCalendar RRULE subset used by the portal (FREQ, INTERVAL,
BYDAY, BYMONTHDAY, BYMONTH, COUNT, UNTIL, WKST). The rule is anchored at the
event's start viewed in community-local time, so BYMONTHDAY/BYDAY refer to the
local calendar. Expansion is pure: callers pass the window explicitly.
"""

from __future__ import annotations

import datetime as dt
import functools
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Iterator, Optional

from dateutil import parser as date_parser
from dateutil.rrule import DAILY, MONTHLY, WEEKLY, YEARLY, rrule, weekday, weekdays

from ..core.config_manager import get_config_value
from ..core.timezone_utils import (
    ensure_utc,
    get_community_offset,
    local_midnight_utc,
    to_local,
    to_local_date,
    window_civil_bounds,
)
from .models import Occurrence, Publication

logger = logging.getLogger(__name__)


class RRuleExpansionError(Exception):
    """Base exception for RRULE expansion errors."""


class RRuleParseError(RRuleExpansionError):
    """Error parsing RRULE string."""


class Frequency(Enum):
    """Supported FREQ values, valued with the matching dateutil constants."""

    DAILY = DAILY
    WEEKLY = WEEKLY
    MONTHLY = MONTHLY
    YEARLY = YEARLY


DAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

_BYDAY_RE = re.compile(r"^([+-]?\d{1,2})?(MO|TU|WE|TH|FR|SA|SU)$")


@dataclass(frozen=True)
class RecurrenceRule:
    """Parsed recurrence rule.

    ``by_weekday`` holds ``(weekday_index, nth)`` pairs where weekday_index is
    0=Monday and nth is an optional ordinal (``-1FR`` = last Friday).
    ``until_is_date`` marks a date-only UNTIL, which bounds the whole local day.
    """

    frequency: Frequency
    interval: int = 1
    by_weekday: tuple[tuple[int, Optional[int]], ...] = ()
    by_month_day: tuple[int, ...] = ()
    by_month: tuple[int, ...] = ()
    count: Optional[int] = None
    until: Optional[dt.datetime] = None
    until_is_date: bool = False
    week_start: Optional[int] = None

    def effective_until(self, offset_hours: Optional[int] = None) -> Optional[dt.datetime]:
        """UNTIL as an aware UTC instant; date-only values cover the whole local day."""
        if self.until is None:
            return None
        if self.until_is_date:
            next_day = self.until.date() + dt.timedelta(days=1)
            return local_midnight_utc(next_day, offset_hours) - dt.timedelta(seconds=1)
        return self.until

    def to_rrule(self, dtstart: dt.datetime, offset_hours: Optional[int] = None) -> rrule:
        """Build a dateutil rrule anchored at the aware ``dtstart``."""
        kwargs: dict[str, Any] = {
            "dtstart": dtstart,
            "interval": self.interval,
        }
        if self.by_weekday:
            kwargs["byweekday"] = [
                weekdays[idx] if nth is None else weekday(idx, nth) for idx, nth in self.by_weekday
            ]
        if self.by_month_day:
            kwargs["bymonthday"] = self.by_month_day
        if self.by_month:
            kwargs["bymonth"] = self.by_month
        if self.count is not None:
            kwargs["count"] = self.count
        until = self.effective_until(offset_hours)
        if until is not None:
            kwargs["until"] = until
        if self.week_start is not None:
            kwargs["wkst"] = self.week_start
        return rrule(self.frequency.value, **kwargs)


def _parse_int_list(key: str, value: str, low: int, high: int, allow_zero: bool = False) -> tuple[int, ...]:
    result = []
    for raw in value.split(","):
        raw = raw.strip()
        if not raw:
            continue
        try:
            number = int(raw)
        except ValueError as e:
            raise RRuleParseError(f"{key} value {raw!r} is not an integer") from e
        if number < low or number > high or (number == 0 and not allow_zero):
            raise RRuleParseError(f"{key} value {number} out of range")
        result.append(number)
    if not result:
        raise RRuleParseError(f"{key} is empty")
    return tuple(result)


def _parse_positive_int(key: str, value: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise RRuleParseError(f"{key} value {value!r} is not an integer") from e
    if number < 1:
        raise RRuleParseError(f"{key} must be positive")
    return number


def _parse_by_day(value: str) -> tuple[tuple[int, Optional[int]], ...]:
    result = []
    for raw in value.split(","):
        code = raw.strip().upper()
        if not code:
            continue
        match = _BYDAY_RE.match(code)
        if not match:
            raise RRuleParseError(f"Invalid BYDAY value {raw!r}")
        nth = int(match.group(1)) if match.group(1) else None
        if nth == 0:
            raise RRuleParseError(f"Invalid BYDAY ordinal in {raw!r}")
        result.append((DAY_CODES.index(match.group(2)), nth))
    if not result:
        raise RRuleParseError("BYDAY is empty")
    return tuple(result)


def _parse_until(value: str) -> tuple[dt.datetime, bool]:
    try:
        parsed = date_parser.isoparse(value)
    except ValueError as e:
        raise RRuleParseError(f"Invalid UNTIL value {value!r}") from e
    is_date = "T" not in value.upper()
    return ensure_utc(parsed), is_date


@functools.lru_cache(maxsize=512)
def parse_rrule(rule_string: str) -> RecurrenceRule:
    """Parse an RRULE string into a RecurrenceRule.

    Args:
        rule_string: e.g. "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,TH" (an "RRULE:"
            prefix is accepted)

    Returns:
        Parsed RecurrenceRule

    Raises:
        RRuleParseError: If the string is empty, lacks FREQ, or has invalid values
    """
    if not rule_string or not rule_string.strip():
        raise RRuleParseError("Empty RRULE string")

    text = rule_string.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:"):]

    fields: dict[str, Any] = {}
    until: Optional[dt.datetime] = None
    for part in text.split(";"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise RRuleParseError(f"Malformed RRULE part {part!r}")
        key, value = part.split("=", 1)
        key = key.strip().upper()
        value = value.strip()

        if key == "FREQ":
            try:
                fields["frequency"] = Frequency[value.upper()]
            except KeyError as e:
                raise RRuleParseError(f"Unsupported FREQ {value!r}") from e
        elif key == "INTERVAL":
            fields["interval"] = _parse_positive_int(key, value)
        elif key == "BYDAY":
            fields["by_weekday"] = _parse_by_day(value)
        elif key == "BYMONTHDAY":
            fields["by_month_day"] = _parse_int_list(key, value, -31, 31)
        elif key == "BYMONTH":
            fields["by_month"] = _parse_int_list(key, value, 1, 12)
        elif key == "COUNT":
            fields["count"] = _parse_positive_int(key, value)
        elif key == "UNTIL":
            until, until_is_date = _parse_until(value)
            fields["until"] = until
            fields["until_is_date"] = until_is_date
        elif key == "WKST":
            if value.upper() not in DAY_CODES:
                raise RRuleParseError(f"Invalid WKST {value!r}")
            fields["week_start"] = DAY_CODES.index(value.upper())
        else:
            logger.debug("Ignoring unsupported RRULE part %s=%s", key, value)

    if "frequency" not in fields:
        raise RRuleParseError("RRULE missing required FREQ parameter")
    if "count" in fields and until is not None:
        raise RRuleParseError("RRULE must not contain both COUNT and UNTIL")

    return RecurrenceRule(**fields)


@dataclass
class RRuleExpanderConfig:
    """Configuration for recurrence expansion.

    Consolidates all expansion settings with explicit defaults.
    """

    max_occurrences_per_rule: int = 250
    expansion_days_window: int = 365
    offset_hours: Optional[int] = None

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        """Extract expansion configuration from a settings object or mapping."""
        return cls(
            max_occurrences_per_rule=int(get_config_value(settings, "max_occurrences_per_rule", 250)),
            expansion_days_window=int(get_config_value(settings, "expansion_days_window", 365)),
            offset_hours=get_config_value(settings, "community_utc_offset_hours", None),
        )


class RecurrenceExpander:
    """Expands publications into civil occurrence dates for a bounded window."""

    def __init__(self, config: Optional[RRuleExpanderConfig] = None):
        self.config = config or RRuleExpanderConfig()
        logger.debug(
            "RecurrenceExpander initialized: max_occurrences=%d, expansion_days=%d, offset=%s",
            self.config.max_occurrences_per_rule,
            self.config.expansion_days_window,
            self.config.offset_hours,
        )

    @property
    def offset_hours(self) -> int:
        """Configured offset, or the process-wide community offset when unset."""
        if self.config.offset_hours is None:
            return get_community_offset()
        return self.config.offset_hours

    def iter_rule_instants(
        self,
        event: Publication,
        window_start: dt.datetime,
        window_end: dt.datetime,
    ) -> Iterator[dt.datetime]:
        """Yield rule-generated instants in ``[window_start, window_end)``.

        Instants after the event's ``recurrence_until`` are dropped and at most
        ``max_occurrences_per_rule`` instants are produced.

        Raises:
            RRuleParseError: If the rule string is malformed
            RRuleExpansionError: If dateutil rejects the rule
        """
        if event.start_at is None or not event.recurrence_rule:
            return

        rule = parse_rrule(event.recurrence_rule)
        dtstart = to_local(event.start_at, self.offset_hours)
        try:
            generator = rule.to_rrule(dtstart, self.offset_hours)
        except (ValueError, TypeError) as e:
            raise RRuleExpansionError(f"Cannot expand rule {event.recurrence_rule!r}: {e}") from e

        start = ensure_utc(window_start)
        end = ensure_utc(window_end)
        series_end = event.recurrence_until
        produced = 0

        for occurrence in generator.xafter(start, inc=True):
            if occurrence >= end:
                break
            if series_end is not None and occurrence > series_end:
                break
            if produced >= self.config.max_occurrences_per_rule:
                logger.debug(
                    "Expansion of %s limited to %d occurrences",
                    event.id,
                    self.config.max_occurrences_per_rule,
                )
                break
            produced += 1
            yield occurrence

    def occurrence_dates(
        self,
        event: Publication,
        window_start: dt.datetime,
        window_end: dt.datetime,
    ) -> list[dt.date]:
        """Civil dates on which ``event`` occurs within ``[window_start, window_end)``.

        Malformed rules produce no occurrences (logged as a warning) so one bad
        record cannot break an aggregate view.
        """
        if event.start_at is None:
            return []

        if event.is_recurring:
            try:
                dates = {
                    to_local_date(instant, self.offset_hours)
                    for instant in self.iter_rule_instants(event, window_start, window_end)
                }
            except RRuleExpansionError as e:
                logger.warning("Skipping event %s with unusable recurrence rule: %s", event.id, e)
                return []
            return sorted(dates)

        if event.all_day and event.end_at is not None and event.end_at >= event.start_at:
            first, last = window_civil_bounds(window_start, window_end, self.offset_hours)
            day = max(to_local_date(event.start_at, self.offset_hours), first)
            end_day = min(to_local_date(event.end_at, self.offset_hours), last)
            result = []
            while day <= end_day:
                result.append(day)
                day += dt.timedelta(days=1)
            return result

        if ensure_utc(window_start) <= event.start_at < ensure_utc(window_end):
            return [to_local_date(event.start_at, self.offset_hours)]
        return []

    def first_occurrence(
        self,
        event: Publication,
        window_start: dt.datetime,
        window_end: dt.datetime,
    ) -> Optional[dt.date]:
        """First civil date of ``event`` inside the window, or None."""
        dates = self.occurrence_dates(event, window_start, window_end)
        return dates[0] if dates else None

    def next_occurrence_instant(self, event: Publication, after: dt.datetime) -> Optional[dt.datetime]:
        """First rule instant at or after ``after`` within the expansion horizon."""
        if not event.is_recurring:
            return event.start_at if event.start_at is not None and event.start_at >= after else None
        horizon = ensure_utc(after) + dt.timedelta(days=self.config.expansion_days_window)
        try:
            for instant in self.iter_rule_instants(event, after, horizon):
                return ensure_utc(instant)
        except RRuleExpansionError as e:
            logger.warning("Skipping event %s with unusable recurrence rule: %s", event.id, e)
        return None

    def expand_occurrences(
        self,
        events: Iterable[Publication],
        window_start: dt.datetime,
        window_end: dt.datetime,
    ) -> list[Occurrence]:
        """Occurrences of many events, ordered by date then event start."""
        rows: list[tuple[dt.date, dt.datetime, str, Occurrence]] = []
        for event in events:
            if event.start_at is None:
                continue
            for day in self.occurrence_dates(event, window_start, window_end):
                rows.append((day, event.start_at, event.id, Occurrence(event_id=event.id, occurrence_date=day)))
        rows.sort(key=lambda row: (row[0], row[1], row[2]))
        return [row[3] for row in rows]


# Global expander instance (created on first use)
_expander: Optional[RecurrenceExpander] = None


def get_expander(settings: Any = None) -> RecurrenceExpander:
    """Get or create the shared RecurrenceExpander.

    Args:
        settings: Optional configuration used the first time the expander is built

    Returns:
        RecurrenceExpander instance
    """
    global _expander
    if _expander is None:
        config = RRuleExpanderConfig.from_settings(settings) if settings is not None else None
        _expander = RecurrenceExpander(config)
    return _expander
