"""Unit tests for community_calendar.domain.event_service."""

import pytest

from community_calendar.calendar.models import (
    CommunityUser,
    EventDraft,
    EventUpdate,
    Publication,
    PublicationStatus,
    PublicationType,
    RecurrenceType,
    UserRole,
)
from community_calendar.calendar.views import monthly_events
from community_calendar.domain import event_service
from community_calendar.domain.community_store import CommunityStore
from community_calendar.exceptions import ForbiddenError, NotFoundError, ValidationError
from tests.conftest import NOW, utc

pytestmark = [pytest.mark.unit, pytest.mark.fast]


def _draft(**overrides) -> EventDraft:
    fields = {"title": "Courtyard cleanup", "start_at": utc(2024, 6, 20, 7, 0)}
    fields.update(overrides)
    return EventDraft(**fields)


def test_staff_events_publish_directly(store) -> None:
    pub = event_service.create_event(store, "admin", _draft(), NOW)
    assert pub.status == PublicationStatus.PUBLISHED
    assert pub.type == PublicationType.EVENT
    assert store.get_publication(pub.id) == pub


def test_resident_events_wait_for_moderation(store) -> None:
    pub = event_service.create_event(store, "res", _draft(), NOW)
    assert pub.status == PublicationStatus.PENDING


def test_create_requires_known_author(store) -> None:
    with pytest.raises(NotFoundError):
        event_service.create_event(store, "ghost", _draft(), NOW)


def test_create_validates_times(store) -> None:
    with pytest.raises(ValidationError):
        event_service.create_event(store, "admin", _draft(start_at=None), NOW)
    with pytest.raises(ValidationError):
        event_service.create_event(store, "admin", _draft(end_at=utc(2024, 6, 19)), NOW)


def test_create_builds_rule_from_type(store) -> None:
    pub = event_service.create_event(
        store, "admin", _draft(recurrence_type=RecurrenceType.WEEKLY, weekdays=[2, 0]), NOW
    )
    assert pub.recurrence_rule == "FREQ=WEEKLY;BYDAY=MO,WE"
    assert pub.is_recurring


def test_create_rejects_malformed_rule(store) -> None:
    with pytest.raises(ValidationError):
        event_service.create_event(
            store, "admin", _draft(recurrence_type=RecurrenceType.DAILY, recurrence_rule="FREQ=SOMETIMES"), NOW
        )


def test_create_takes_series_bound_from_rule_until(store) -> None:
    pub = event_service.create_event(
        store,
        "admin",
        _draft(recurrence_type=RecurrenceType.DAILY, recurrence_rule="FREQ=DAILY;UNTIL=20240630T205959Z"),
        NOW,
    )
    assert pub.recurrence_until == utc(2024, 6, 30, 20, 59, 59)


def test_create_drops_rule_for_one_off_events(store) -> None:
    pub = event_service.create_event(store, "admin", _draft(recurrence_rule="FREQ=DAILY"), NOW)
    assert pub.recurrence_rule is None
    assert not pub.is_recurring


def test_update_by_stranger_is_forbidden(store) -> None:
    pub = event_service.create_event(store, "res", _draft(), NOW)
    with pytest.raises(ForbiddenError):
        event_service.update_event(store, "res2", pub.id, EventUpdate(title="Mine now"), NOW)


def test_resident_edit_of_published_event_returns_to_moderation(store) -> None:
    pub = event_service.create_event(store, "res", _draft(), NOW)
    event_service.moderate_event(store, "mod", pub.id, "published", None, NOW)

    updated = event_service.update_event(store, "res", pub.id, EventUpdate(title="Cleanup, take two"), NOW)

    assert updated.title == "Cleanup, take two"
    assert updated.status == PublicationStatus.PENDING
    assert updated.updated_at == NOW


def test_staff_edit_keeps_status_and_rebuilds_rule_on_type_change(store) -> None:
    pub = event_service.create_event(store, "admin", _draft(), NOW)
    updated = event_service.update_event(
        store, "mod", pub.id, EventUpdate(recurrence_type=RecurrenceType.MONTHLY), NOW
    )
    assert updated.status == PublicationStatus.PUBLISHED
    assert updated.recurrence_rule == "FREQ=MONTHLY;BYMONTHDAY=20"


def test_update_unknown_event(store) -> None:
    with pytest.raises(NotFoundError):
        event_service.update_event(store, "admin", "nope", EventUpdate(title="x"), NOW)


def test_submit_only_drafts(store) -> None:
    draft = store.put_publication(
        Publication(
            id="d1",
            title="Draft",
            type=PublicationType.EVENT,
            status=PublicationStatus.DRAFT,
            author_id="res",
            start_at=utc(2024, 6, 20),
        )
    )
    with pytest.raises(ForbiddenError):
        event_service.submit_event(store, "res2", draft.id, NOW)

    submitted = event_service.submit_event(store, "res", draft.id, NOW)
    assert submitted.status == PublicationStatus.PENDING

    with pytest.raises(ValidationError):
        event_service.submit_event(store, "res", draft.id, NOW)


def test_moderation_records_decision(store) -> None:
    pub = event_service.create_event(store, "res", _draft(), NOW)
    rejected = event_service.moderate_event(store, "mod", pub.id, "rejected", "Duplicate", NOW)
    assert rejected.status == PublicationStatus.REJECTED
    assert rejected.moderated_by == "mod"
    assert rejected.moderated_at == NOW
    assert rejected.moderation_comment == "Duplicate"


def test_moderation_rules(store) -> None:
    pub = event_service.create_event(store, "res", _draft(), NOW)
    with pytest.raises(ForbiddenError):
        event_service.moderate_event(store, "res2", pub.id, "published", None, NOW)
    with pytest.raises(ValidationError):
        event_service.moderate_event(store, "mod", pub.id, "archived", None, NOW)
    with pytest.raises(ValidationError):
        event_service.moderate_event(store, "mod", pub.id, "maybe", None, NOW)
    with pytest.raises(ValidationError):
        event_service.moderate_event(store, "mod", pub.id, "published", "x" * 501, NOW)


def test_delete_only_by_author(store) -> None:
    pub = event_service.create_event(store, "res", _draft(), NOW)
    with pytest.raises(ForbiddenError):
        event_service.delete_event(store, "admin", pub.id)
    event_service.delete_event(store, "res", pub.id)
    assert store.get_publication(pub.id) is None


@pytest.mark.parametrize("payload", [{"title": None}, {"all_day": None}, {"start_at": None}])
def test_update_rejects_invalid_values_and_keeps_store_loadable(tmp_path, payload) -> None:
    path = tmp_path / "community.json"
    store = CommunityStore(path)
    store.put_user(CommunityUser(id="admin", roles=[UserRole.ADMIN]))
    pub = event_service.create_event(store, "admin", _draft(), NOW)

    with pytest.raises(ValidationError):
        event_service.update_event(store, "admin", pub.id, EventUpdate.model_validate(payload), NOW)

    assert CommunityStore(path).get_publication(pub.id).title == "Courtyard cleanup"


def test_replacing_rule_rederives_series_bound(store) -> None:
    pub = event_service.create_event(
        store,
        "admin",
        _draft(
            start_at=utc(2024, 6, 3, 7, 0),
            recurrence_type=RecurrenceType.WEEKLY,
            recurrence_rule="FREQ=WEEKLY;BYDAY=MO;UNTIL=20240610T235959Z",
        ),
        NOW,
    )
    assert pub.recurrence_until == utc(2024, 6, 10, 23, 59, 59)

    updated = event_service.update_event(
        store, "admin", pub.id, EventUpdate(recurrence_rule="FREQ=WEEKLY;BYDAY=MO"), NOW
    )

    assert updated.recurrence_until is None
    rows = monthly_events([updated], 2024, 7, NOW)
    assert [r.occurrence_date for r in rows] == ["2024-07-01", "2024-07-08", "2024-07-15", "2024-07-22", "2024-07-29"]


def test_explicit_series_bound_survives_rule_change(store) -> None:
    pub = event_service.create_event(
        store, "admin", _draft(start_at=utc(2024, 6, 3, 7, 0), recurrence_type=RecurrenceType.WEEKLY), NOW
    )
    updated = event_service.update_event(
        store,
        "admin",
        pub.id,
        EventUpdate(recurrence_rule="FREQ=WEEKLY;BYDAY=TU", recurrence_until=utc(2024, 6, 30)),
        NOW,
    )
    assert updated.recurrence_until == utc(2024, 6, 30)
