"""Calendar aggregations: weekly agenda, two-week strip, month grid, upcoming list.

Every function takes the current instant explicitly so results are
deterministic for a given input.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from ..core.timezone_utils import local_midnight_utc, month_window, start_of_local_day, to_local_date
from ..exceptions import ValidationError
from .event_filter import has_not_ended, overlaps_agenda_window, overlaps_month_window, visible_events
from .models import AgendaDay, AgendaEvent, MonthlyEventRow, Publication, UpcomingEvent, WeekDay, WeekGrid
from .rrule_expander import RecurrenceExpander, RRuleExpansionError, get_expander

logger = logging.getLogger(__name__)

DEFAULT_AGENDA_DAYS = 14
WEEK_GRID_DAYS = 14
MAX_OCCURRENCE_SPAN_DAYS = 366
MIN_YEAR = 2020
MAX_YEAR = 2100


def agenda_window(
    now: datetime, days: int = DEFAULT_AGENDA_DAYS, offset_hours: Optional[int] = None
) -> tuple[datetime, datetime]:
    """Window from local midnight today through the end of the local day ``days`` ahead."""
    today = to_local_date(now, offset_hours)
    return start_of_local_day(now, offset_hours), local_midnight_utc(today + timedelta(days=days + 1), offset_hours)


def weekly_agenda(
    publications: Iterable[Publication],
    now: datetime,
    days: int = DEFAULT_AGENDA_DAYS,
    expander: Optional[RecurrenceExpander] = None,
) -> list[AgendaDay]:
    """Upcoming events grouped by community-local date.

    A recurring event shows up once, on its first occurrence in the window.
    All-day ranges show up on each day they cover. Every event appears at
    most once per day.
    """
    if days < 1 or days > 31:
        raise ValidationError("days must be between 1 and 31")
    expander = expander or get_expander()
    window_start, window_end = agenda_window(now, days, expander.offset_hours)

    grouped: dict[str, list[AgendaEvent]] = {}
    placed: set[tuple[str, str]] = set()

    for pub in visible_events(publications, now):
        if not overlaps_agenda_window(pub, now, window_end):
            continue

        if pub.is_recurring:
            first = expander.first_occurrence(pub, window_start, window_end)
            event_days = [first] if first is not None else []
        else:
            event_days = expander.occurrence_dates(pub, window_start, window_end)

        for day in event_days:
            key = day.isoformat()
            if (key, pub.id) in placed:
                continue
            placed.add((key, pub.id))
            grouped.setdefault(key, []).append(AgendaEvent.from_publication(pub))

    logger.debug("Weekly agenda: %d days with events", len(grouped))
    return [AgendaDay(date=key, events=grouped[key]) for key in sorted(grouped)]


def _week_days(today: date) -> list[WeekDay]:
    monday = today - timedelta(days=today.weekday())
    result = []
    for i in range(WEEK_GRID_DAYS):
        day = monday + timedelta(days=i)
        result.append(
            WeekDay(
                date=day.isoformat(),
                weekday=i % 7,
                day_number=day.day,
                is_today=day == today,
                is_weekend=i % 7 >= 5,
            )
        )
    return result


def build_week_grid(
    publications: Iterable[Publication],
    now: datetime,
    expander: Optional[RecurrenceExpander] = None,
) -> WeekGrid:
    """Two-week strip (current and next week) with agenda cards and event dots.

    Colors are assigned per event in order of first appearance in the agenda.
    Dots mark every strip day an event touches: each day of an all-day range,
    every occurrence of a recurring event plus the days its duration spans.
    All-day range cards are shown only on their earliest visible day.
    """
    expander = expander or get_expander()
    offset = expander.offset_hours
    pubs = list(publications)
    today = to_local_date(now, offset)
    days = _week_days(today)
    strip = {d.date for d in days}
    strip_start = local_midnight_utc(date.fromisoformat(days[0].date), offset)
    strip_end = local_midnight_utc(date.fromisoformat(days[-1].date) + timedelta(days=1), offset)

    agenda = weekly_agenda(pubs, now, DEFAULT_AGENDA_DAYS, expander)
    by_id = {pub.id: pub for pub in pubs}

    colors: dict[str, int] = {}
    for agenda_day in agenda:
        for event in agenda_day.events:
            colors.setdefault(event.id, len(colors))

    dot_map: dict[str, list[int]] = {}
    event_date_map: dict[str, list[str]] = {}

    def mark(day_key: str, event_id: str) -> None:
        if day_key not in strip:
            return
        dates = event_date_map.setdefault(event_id, [])
        if day_key in dates:
            return
        dates.append(day_key)
        dot_map.setdefault(day_key, []).append(colors[event_id])

    processed: set[str] = set()
    for agenda_day in agenda:
        for event in agenda_day.events:
            pub = by_id[event.id]
            if pub.is_recurring:
                if pub.id in processed:
                    continue
                processed.add(pub.id)
                _mark_recurring(pub, strip_start, strip_end, expander, lambda key, eid=pub.id: mark(key, eid))
            elif pub.all_day and pub.end_at is not None:
                if pub.id in processed:
                    continue
                processed.add(pub.id)
                for day in expander.occurrence_dates(pub, strip_start, strip_end):
                    mark(day.isoformat(), pub.id)
            else:
                mark(agenda_day.date, pub.id)

    cards: list[AgendaDay] = []
    shown_ranges: set[str] = set()
    for agenda_day in agenda:
        events = []
        for event in agenda_day.events:
            pub = by_id[event.id]
            if pub.all_day and pub.end_at is not None and not pub.is_recurring:
                if pub.id in shown_ranges:
                    continue
                shown_ranges.add(pub.id)
            events.append(event.model_copy(update={"color_index": colors[event.id]}))
        if events:
            cards.append(AgendaDay(date=agenda_day.date, events=events))

    return WeekGrid(
        today=today.isoformat(),
        days=days,
        agenda=cards,
        dot_map=dot_map,
        event_date_map=event_date_map,
    )


def _mark_recurring(pub, strip_start, strip_end, expander, mark) -> None:  # type: ignore[no-untyped-def]
    offset = expander.offset_hours
    duration = pub.end_at - pub.start_at if pub.end_at is not None else timedelta(0)
    try:
        instants = list(expander.iter_rule_instants(pub, strip_start, strip_end))
    except RRuleExpansionError as e:
        logger.warning("Skipping dots for event %s: %s", pub.id, e)
        return
    for instant in instants:
        mark(to_local_date(instant, offset).isoformat())
        # multi-day occurrences (e.g. monthly 20th-25th) also dot the spanned days
        if duration > timedelta(0):
            cursor = instant + timedelta(days=1)
            occurrence_end = instant + duration
            while cursor <= occurrence_end:
                mark(to_local_date(cursor, offset).isoformat())
                cursor += timedelta(days=1)


def monthly_events(
    publications: Iterable[Publication],
    year: int,
    month: int,
    now: datetime,
    expander: Optional[RecurrenceExpander] = None,
) -> list[MonthlyEventRow]:
    """Every occurrence of every visible event within a community-local month.

    Rows are ordered by occurrence date, then by event start.
    """
    if year < MIN_YEAR or year > MAX_YEAR:
        raise ValidationError(f"year must be between {MIN_YEAR} and {MAX_YEAR}")
    if month < 1 or month > 12:
        raise ValidationError("month must be between 1 and 12")

    expander = expander or get_expander()
    month_start, month_end = month_window(year, month, expander.offset_hours)

    rows: list[MonthlyEventRow] = []
    for pub in visible_events(publications, now):
        if not overlaps_month_window(pub, month_start, month_end):
            continue
        base = AgendaEvent.from_publication(pub).model_dump()
        for day in expander.occurrence_dates(pub, month_start, month_end):
            rows.append(MonthlyEventRow(**base, occurrence_date=day.isoformat()))

    rows.sort(key=lambda row: (row.occurrence_date, row.start_at or month_start, row.id))
    logger.debug("Monthly events %04d-%02d: %d rows", year, month, len(rows))
    return rows


def upcoming_events(
    publications: Iterable[Publication],
    now: datetime,
    limit: int = 4,
    expander: Optional[RecurrenceExpander] = None,
) -> list[UpcomingEvent]:
    """Events that have not ended yet, pinned first, then soonest first.

    Recurring events are ordered by their next occurrence and dropped when no
    occurrence remains inside the expansion horizon.
    """
    if limit < 1 or limit > 20:
        raise ValidationError("limit must be between 1 and 20")
    expander = expander or get_expander()

    candidates: list[tuple[bool, datetime, str, UpcomingEvent]] = []
    for pub in visible_events(publications, now):
        if not has_not_ended(pub, now):
            continue
        if pub.is_recurring:
            next_at = expander.next_occurrence_instant(pub, now)
            if next_at is None:
                continue
        else:
            next_at = pub.start_at
        item = UpcomingEvent(
            **AgendaEvent.from_publication(pub).model_dump(),
            is_pinned=pub.is_pinned,
            next_occurrence_at=next_at,
        )
        candidates.append((not pub.is_pinned, next_at, pub.id, item))

    candidates.sort(key=lambda row: (row[0], row[1], row[2]))
    return [row[3] for row in candidates[:limit]]


def occurrences_between(
    pub: Publication,
    from_date: date,
    to_date: date,
    expander: Optional[RecurrenceExpander] = None,
) -> list[str]:
    """Civil occurrence dates of one event for ``[from_date, to_date)``."""
    for bound in (from_date, to_date):
        if bound.year < MIN_YEAR or bound.year > MAX_YEAR:
            raise ValidationError(f"dates must fall between {MIN_YEAR} and {MAX_YEAR}")
    if to_date <= from_date:
        raise ValidationError("'to' must be after 'from'")
    if (to_date - from_date).days > MAX_OCCURRENCE_SPAN_DAYS:
        raise ValidationError(f"date range must not exceed {MAX_OCCURRENCE_SPAN_DAYS} days")
    expander = expander or get_expander()
    start = local_midnight_utc(from_date, expander.offset_hours)
    end = local_midnight_utc(to_date, expander.offset_hours)
    return [day.isoformat() for day in expander.occurrence_dates(pub, start, end)]
