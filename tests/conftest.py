"""Shared fixtures for community_calendar tests."""

from collections.abc import Callable, Generator
from datetime import datetime, timezone
from typing import Any

import pytest

from community_calendar.calendar.models import (
    CommunityUser,
    Publication,
    PublicationStatus,
    PublicationType,
    RecurrenceType,
    UserRole,
)
from community_calendar.calendar.rrule_expander import RecurrenceExpander, RRuleExpanderConfig
from community_calendar.core.timezone_utils import DEFAULT_COMMUNITY_OFFSET_HOURS, set_community_offset
from community_calendar.domain.community_store import CommunityStore

# Wednesday 2024-06-12 12:00 community-local (UTC+3)
NOW = datetime(2024, 6, 12, 9, 0, tzinfo=timezone.utc)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def pytest_configure(config: Any) -> None:
    """Register test markers."""
    config.addinivalue_line("markers", "unit: Fast isolated unit tests")
    config.addinivalue_line("markers", "integration: Tests that exercise the HTTP application")
    config.addinivalue_line("markers", "fast: Tests that finish in well under a second")


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear COMMUNITY_* variables so the host environment cannot leak into tests."""
    for name in (
        "COMMUNITY_TEST_TIME",
        "COMMUNITY_DATA_PATH",
        "COMMUNITY_WEB_HOST",
        "COMMUNITY_SERVER_BIND",
        "COMMUNITY_WEB_PORT",
        "COMMUNITY_SERVER_PORT",
        "COMMUNITY_UTC_OFFSET_HOURS",
        "COMMUNITY_API_TOKEN",
        "COMMUNITY_LOG_LEVEL",
        "COMMUNITY_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    yield


@pytest.fixture(autouse=True)
def reset_calendar_globals() -> Generator[None, Any, None]:
    """Reset the shared expander and community offset between tests."""
    yield
    import community_calendar.calendar.rrule_expander

    community_calendar.calendar.rrule_expander._expander = None
    set_community_offset(DEFAULT_COMMUNITY_OFFSET_HOURS)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def expander() -> RecurrenceExpander:
    return RecurrenceExpander(RRuleExpanderConfig(offset_hours=3))


@pytest.fixture
def make_event() -> Callable[..., Publication]:
    """Factory for published, publicly visible event publications."""
    counter = {"n": 0}

    def _make(**overrides: Any) -> Publication:
        counter["n"] += 1
        fields: dict[str, Any] = {
            "id": f"evt-{counter['n']}",
            "title": f"Event {counter['n']}",
            "type": PublicationType.EVENT,
            "status": PublicationStatus.PUBLISHED,
            "author_id": "admin",
            "start_at": utc(2024, 6, 20, 7, 0),
            "created_at": utc(2024, 5, 1),
        }
        fields.update(overrides)
        if fields.get("recurrence_rule") and "recurrence_type" not in overrides:
            fields["recurrence_type"] = RecurrenceType.WEEKLY
        return Publication(**fields)

    return _make


@pytest.fixture
def store() -> CommunityStore:
    """In-memory store with one user per relevant role."""
    s = CommunityStore()
    s.put_user(CommunityUser(id="root", name="Root", roles=[UserRole.ROOT]))
    s.put_user(CommunityUser(id="admin", name="Admin", roles=[UserRole.ADMIN]))
    s.put_user(CommunityUser(id="mod", name="Moderator", roles=[UserRole.MODERATOR]))
    s.put_user(CommunityUser(id="res", name="Resident", roles=[UserRole.TENANT]))
    s.put_user(CommunityUser(id="res2", name="Neighbour", roles=[UserRole.APARTMENT_OWNER]))
    return s
