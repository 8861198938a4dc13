"""
Unit tests for community_calendar.calendar.rrule_expander

Covers:
- RRULE parsing (case, prefix, ordinals, invalid input)
- civil-date expansion for recurring, all-day and timed events
- series bounds and occurrence caps
- next-occurrence lookup and the shared expander
"""

import logging
from datetime import date

import pytest

from community_calendar.calendar.models import RecurrenceType
from community_calendar.calendar.rrule_expander import (
    Frequency,
    RecurrenceExpander,
    RRuleExpanderConfig,
    RRuleExpansionError,
    RRuleParseError,
    get_expander,
    parse_rrule,
)
from community_calendar.core.timezone_utils import local_midnight_utc, month_window, set_community_offset
from tests.conftest import utc

pytestmark = [pytest.mark.unit, pytest.mark.fast]


# Parsing


def test_parse_rrule_accepts_prefix_and_lowercase_values() -> None:
    rule = parse_rrule("RRULE:FREQ=weekly;INTERVAL=2;BYDAY=MO,-1FR;WKST=SU")
    assert rule.frequency is Frequency.WEEKLY
    assert rule.interval == 2
    assert rule.by_weekday == ((0, None), (4, -1))
    assert rule.week_start == 6


def test_parse_rrule_reads_month_lists_and_count() -> None:
    rule = parse_rrule("FREQ=YEARLY;BYMONTH=3,9;BYMONTHDAY=-1;COUNT=4")
    assert rule.by_month == (3, 9)
    assert rule.by_month_day == (-1,)
    assert rule.count == 4


def test_parse_rrule_date_only_until() -> None:
    rule = parse_rrule("FREQ=DAILY;UNTIL=20240620")
    assert rule.until_is_date
    # the whole local day of June 20 is included
    assert rule.effective_until(3) == utc(2024, 6, 20, 20, 59, 59)


def test_parse_rrule_ignores_unknown_keys() -> None:
    assert parse_rrule("FREQ=DAILY;X-CUSTOM=1").frequency is Frequency.DAILY


@pytest.mark.parametrize(
    "rule_string",
    [
        "",
        "INTERVAL=2",
        "FREQ=HOURLY",
        "FREQ=DAILY;INTERVAL=0",
        "FREQ=WEEKLY;BYDAY=XX",
        "FREQ=MONTHLY;BYMONTHDAY=32",
        "FREQ=DAILY;COUNT=2;UNTIL=20240101T000000Z",
        "FREQ=DAILY;UNTIL=tomorrow",
        "FREQ",
    ],
)
def test_parse_rrule_rejects_invalid_rules(rule_string: str) -> None:
    with pytest.raises(RRuleParseError):
        parse_rrule(rule_string)


def test_parse_error_is_an_expansion_error() -> None:
    assert issubclass(RRuleParseError, RRuleExpansionError)


# Expansion


def test_monthly_on_15th_yields_june_15(expander, make_event) -> None:
    event = make_event(
        start_at=utc(2024, 1, 15, 7, 0),
        recurrence_type=RecurrenceType.MONTHLY,
        recurrence_rule="FREQ=MONTHLY;BYMONTHDAY=15",
    )
    assert expander.occurrence_dates(event, *month_window(2024, 6)) == [date(2024, 6, 15)]


def test_rule_is_anchored_in_local_time(expander, make_event) -> None:
    # 22:00Z on Jan 14 is 01:00 on Jan 15 locally
    event = make_event(
        start_at=utc(2024, 1, 14, 22, 0),
        recurrence_type=RecurrenceType.MONTHLY,
        recurrence_rule="FREQ=MONTHLY;BYMONTHDAY=15",
    )
    assert expander.occurrence_dates(event, *month_window(2024, 6)) == [date(2024, 6, 15)]


def test_weekly_rule_with_two_days(expander, make_event) -> None:
    event = make_event(start_at=utc(2024, 6, 3, 7, 0), recurrence_rule="FREQ=WEEKLY;BYDAY=MO,TH")
    window = (local_midnight_utc(date(2024, 6, 3)), local_midnight_utc(date(2024, 6, 17)))
    assert expander.occurrence_dates(event, *window) == [
        date(2024, 6, 3),
        date(2024, 6, 6),
        date(2024, 6, 10),
        date(2024, 6, 13),
    ]


def test_all_day_range_is_clipped_to_window(expander, make_event) -> None:
    event = make_event(
        all_day=True,
        start_at=utc(2024, 3, 29, 21, 0),  # local 2024-03-30 00:00
        end_at=utc(2024, 4, 1, 21, 0),  # local 2024-04-02 00:00
    )
    assert expander.occurrence_dates(event, *month_window(2024, 3)) == [date(2024, 3, 30), date(2024, 3, 31)]
    assert expander.occurrence_dates(event, *month_window(2024, 4)) == [date(2024, 4, 1), date(2024, 4, 2)]


def test_timed_event_yields_start_date_or_nothing(expander, make_event) -> None:
    event = make_event(start_at=utc(2024, 6, 20, 22, 0), end_at=utc(2024, 6, 21, 1, 0))
    assert expander.occurrence_dates(event, *month_window(2024, 6)) == [date(2024, 6, 21)]
    assert expander.occurrence_dates(event, *month_window(2024, 7)) == []


def test_event_without_start_has_no_occurrences(expander, make_event) -> None:
    assert expander.occurrence_dates(make_event(start_at=None), *month_window(2024, 6)) == []


def test_repeat_type_without_rule_is_one_off(expander, make_event) -> None:
    event = make_event(start_at=utc(2024, 6, 5, 7, 0), recurrence_type=RecurrenceType.DAILY, recurrence_rule=None)
    assert not event.is_recurring
    assert expander.occurrence_dates(event, *month_window(2024, 6)) == [date(2024, 6, 5)]


def test_recurrence_until_bounds_the_series(expander, make_event) -> None:
    event = make_event(
        start_at=utc(2024, 6, 1, 7, 0),
        recurrence_type=RecurrenceType.DAILY,
        recurrence_rule="FREQ=DAILY",
        recurrence_until=utc(2024, 6, 5, 7, 0),
    )
    dates = expander.occurrence_dates(event, *month_window(2024, 6))
    assert dates == [date(2024, 6, d) for d in range(1, 6)]
    assert all(d <= date(2024, 6, 5) for d in dates)


def test_rule_until_bounds_the_series(expander, make_event) -> None:
    event = make_event(
        start_at=utc(2024, 6, 1, 7, 0),
        recurrence_type=RecurrenceType.DAILY,
        recurrence_rule="FREQ=DAILY;UNTIL=20240603",
    )
    assert expander.occurrence_dates(event, *month_window(2024, 6)) == [
        date(2024, 6, 1),
        date(2024, 6, 2),
        date(2024, 6, 3),
    ]


def test_occurrence_cap(make_event) -> None:
    expander = RecurrenceExpander(RRuleExpanderConfig(max_occurrences_per_rule=3, offset_hours=3))
    event = make_event(
        start_at=utc(2024, 6, 1, 7, 0), recurrence_type=RecurrenceType.DAILY, recurrence_rule="FREQ=DAILY"
    )
    assert len(expander.occurrence_dates(event, *month_window(2024, 6))) == 3


def test_malformed_rule_yields_nothing_and_warns(expander, make_event, caplog) -> None:
    event = make_event(
        start_at=utc(2024, 6, 1, 7, 0), recurrence_type=RecurrenceType.DAILY, recurrence_rule="FREQ=BOGUS"
    )
    with caplog.at_level(logging.WARNING):
        assert expander.occurrence_dates(event, *month_window(2024, 6)) == []
    assert "unusable recurrence rule" in caplog.text


def test_expansion_is_idempotent(expander, make_event) -> None:
    event = make_event(start_at=utc(2024, 6, 3, 7, 0), recurrence_rule="FREQ=WEEKLY;BYDAY=MO,WE,FR")
    window = month_window(2024, 6)
    assert expander.occurrence_dates(event, *window) == expander.occurrence_dates(event, *window)


def test_first_occurrence(expander, make_event) -> None:
    event = make_event(start_at=utc(2024, 6, 3, 7, 0), recurrence_rule="FREQ=WEEKLY;BYDAY=MO")
    window = (local_midnight_utc(date(2024, 6, 12)), local_midnight_utc(date(2024, 6, 27)))
    assert expander.first_occurrence(event, *window) == date(2024, 6, 17)
    assert expander.first_occurrence(event, *month_window(2024, 5)) is None


def test_next_occurrence_instant(expander, make_event) -> None:
    weekly = make_event(start_at=utc(2024, 6, 3, 7, 0), recurrence_rule="FREQ=WEEKLY;BYDAY=MO")
    assert expander.next_occurrence_instant(weekly, utc(2024, 6, 4)) == utc(2024, 6, 10, 7, 0)

    one_off = make_event(start_at=utc(2024, 6, 20, 7, 0))
    assert expander.next_occurrence_instant(one_off, utc(2024, 6, 4)) == utc(2024, 6, 20, 7, 0)
    assert expander.next_occurrence_instant(one_off, utc(2024, 6, 21)) is None


def test_expand_occurrences_orders_by_date_then_start(expander, make_event) -> None:
    late = make_event(id="late", start_at=utc(2024, 6, 5, 15, 0))
    early = make_event(id="early", start_at=utc(2024, 6, 5, 6, 0))
    weekly = make_event(id="weekly", start_at=utc(2024, 6, 3, 7, 0), recurrence_rule="FREQ=WEEKLY;BYDAY=MO")
    window = (local_midnight_utc(date(2024, 6, 3)), local_midnight_utc(date(2024, 6, 11)))

    rows = expander.expand_occurrences([late, weekly, early], *window)

    assert [(r.event_id, r.occurrence_date) for r in rows] == [
        ("weekly", date(2024, 6, 3)),
        ("early", date(2024, 6, 5)),
        ("late", date(2024, 6, 5)),
        ("weekly", date(2024, 6, 10)),
    ]


def test_get_expander_is_shared_and_configurable() -> None:
    first = get_expander({"max_occurrences_per_rule": 10, "community_utc_offset_hours": 0})
    assert first is get_expander()
    assert first.config.max_occurrences_per_rule == 10
    assert first.offset_hours == 0


def test_unset_offset_follows_community_offset(make_event) -> None:
    expander = RecurrenceExpander()
    assert expander.offset_hours == 3

    # 22:30 UTC on the 19th is already the 20th at UTC+3, but still the 19th at UTC+0
    late = make_event(start_at=utc(2024, 6, 19, 22, 30))
    window = (utc(2024, 6, 1), utc(2024, 7, 1))
    assert expander.occurrence_dates(late, *window) == [date(2024, 6, 20)]

    set_community_offset(0)
    assert expander.offset_hours == 0
    assert expander.occurrence_dates(late, *window) == [date(2024, 6, 19)]
