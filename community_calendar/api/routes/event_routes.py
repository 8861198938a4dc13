"""Public calendar and event authoring routes."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Callable, Optional

from aiohttp import web

from ...calendar.event_filter import is_publicly_visible
from ...calendar.models import EventDraft, EventUpdate
from ...calendar.rrule_expander import RecurrenceExpander
from ...calendar.views import (
    build_week_grid,
    monthly_events,
    occurrences_between,
    upcoming_events,
    weekly_agenda,
)
from ...core.timezone_utils import serialize_iso, to_local_date
from ...domain import event_service
from ...domain.community_store import CommunityStore
from ...exceptions import NotFoundError, ValidationError
from ..middleware import acting_user_id, check_bearer_token

logger = logging.getLogger(__name__)


def query_int(request: web.Request, name: str, default: Optional[int] = None) -> int:
    """Read an integer query parameter.

    Raises:
        ValidationError: If the value is missing (with no default) or not an integer
    """
    raw = request.query.get(name)
    if raw is None or raw == "":
        if default is None:
            raise ValidationError(f"Query parameter '{name}' is required")
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"Query parameter '{name}' must be an integer") from e


def query_date(request: web.Request, name: str) -> date:
    raw = request.query.get(name)
    if not raw:
        raise ValidationError(f"Query parameter '{name}' is required")
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise ValidationError(f"Query parameter '{name}' must be a YYYY-MM-DD date") from e


async def read_json(request: web.Request) -> dict[str, Any]:
    """Parse a JSON object body."""
    try:
        data = await request.json()
    except ValueError as e:
        raise ValidationError("invalid json") from e
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _dump(models: list[Any]) -> list[dict[str, Any]]:
    return [m.model_dump(mode="json") for m in models]


def register_event_routes(
    app: web.Application,
    store: CommunityStore,
    expander: RecurrenceExpander,
    time_provider: Callable[[], Any],
    bearer_token: Optional[str] = None,
    agenda_days: int = 14,
    upcoming_limit: int = 4,
) -> None:
    """Register calendar read endpoints and event authoring endpoints.

    Args:
        app: aiohttp web application
        store: Community data store
        expander: Recurrence expander shared by all views
        time_provider: Callable returning the current UTC instant
        bearer_token: Token required by mutating routes, or None to skip auth
        agenda_days: Default weekly agenda span
        upcoming_limit: Default size of the upcoming list
    """

    async def health_check(_request: web.Request) -> web.Response:
        now = time_provider()
        return web.json_response(
            {
                "status": "ok",
                "server_time_iso": serialize_iso(now),
                "community_date": to_local_date(now, expander.offset_hours).isoformat(),
                "publications": len(store.list_publications()),
            }
        )

    async def get_weekly_agenda(request: web.Request) -> web.Response:
        days = query_int(request, "days", agenda_days)
        agenda = weekly_agenda(store.list_publications(), time_provider(), days, expander)
        return web.json_response({"days": _dump(agenda)})

    async def get_week_grid(_request: web.Request) -> web.Response:
        grid = build_week_grid(store.list_publications(), time_provider(), expander)
        return web.json_response(grid.model_dump(mode="json"))

    async def get_monthly(request: web.Request) -> web.Response:
        now = time_provider()
        today = to_local_date(now, expander.offset_hours)
        year = query_int(request, "year", today.year)
        month = query_int(request, "month", today.month)
        rows = monthly_events(store.list_publications(), year, month, now, expander)
        logger.debug("/api/events/monthly %04d-%02d -> %d rows", year, month, len(rows))
        return web.json_response({"year": year, "month": month, "events": _dump(rows)})

    async def get_upcoming(request: web.Request) -> web.Response:
        limit = query_int(request, "limit", upcoming_limit)
        events = upcoming_events(store.list_publications(), time_provider(), limit, expander)
        return web.json_response({"events": _dump(events)})

    def _visible_event(event_id: str) -> Any:
        pub = store.get_publication(event_id)
        if pub is None or not is_publicly_visible(pub, time_provider()):
            raise NotFoundError(f"Event {event_id} not found")
        return pub

    async def get_event(request: web.Request) -> web.Response:
        pub = _visible_event(request.match_info["event_id"])
        return web.json_response(pub.model_dump(mode="json"))

    async def get_occurrences(request: web.Request) -> web.Response:
        pub = _visible_event(request.match_info["event_id"])
        from_date = query_date(request, "from")
        to_date = query_date(request, "to")
        dates = occurrences_between(pub, from_date, to_date, expander)
        return web.json_response(
            {"event_id": pub.id, "from": from_date.isoformat(), "to": to_date.isoformat(), "occurrences": dates}
        )

    async def create_event(request: web.Request) -> web.Response:
        check_bearer_token(request, bearer_token)
        user_id = acting_user_id(request)
        draft = EventDraft.model_validate(await read_json(request))
        pub = event_service.create_event(store, user_id, draft, time_provider())
        return web.json_response(pub.model_dump(mode="json"), status=201)

    async def update_event(request: web.Request) -> web.Response:
        check_bearer_token(request, bearer_token)
        user_id = acting_user_id(request)
        changes = EventUpdate.model_validate(await read_json(request))
        pub = event_service.update_event(
            store, user_id, request.match_info["event_id"], changes, time_provider()
        )
        return web.json_response(pub.model_dump(mode="json"))

    async def delete_event(request: web.Request) -> web.Response:
        check_bearer_token(request, bearer_token)
        user_id = acting_user_id(request)
        event_service.delete_event(store, user_id, request.match_info["event_id"])
        return web.json_response({"deleted": True})

    async def submit_event(request: web.Request) -> web.Response:
        check_bearer_token(request, bearer_token)
        user_id = acting_user_id(request)
        pub = event_service.submit_event(store, user_id, request.match_info["event_id"], time_provider())
        return web.json_response(pub.model_dump(mode="json"))

    app.router.add_get("/api/health", health_check)
    app.router.add_get("/api/events/weekly-agenda", get_weekly_agenda)
    app.router.add_get("/api/events/week-grid", get_week_grid)
    app.router.add_get("/api/events/monthly", get_monthly)
    app.router.add_get("/api/events/upcoming", get_upcoming)
    app.router.add_get("/api/events/{event_id}", get_event)
    app.router.add_get("/api/events/{event_id}/occurrences", get_occurrences)
    app.router.add_post("/api/events", create_event)
    app.router.add_patch("/api/events/{event_id}", update_event)
    app.router.add_delete("/api/events/{event_id}", delete_event)
    app.router.add_post("/api/events/{event_id}/submit", submit_event)
