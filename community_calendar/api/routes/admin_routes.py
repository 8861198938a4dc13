"""Administrative routes: moderation and permanent user deletion."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from aiohttp import web

from ...domain import event_service, user_deletion
from ...domain.community_store import CommunityStore
from ...exceptions import ValidationError
from ..middleware import acting_user_id, check_bearer_token
from .event_routes import read_json

logger = logging.getLogger(__name__)


def register_admin_routes(
    app: web.Application,
    store: CommunityStore,
    time_provider: Callable[[], Any],
    bearer_token: Optional[str] = None,
) -> None:
    """Register moderation and user deletion endpoints.

    Every route requires the bearer token (when configured) and an acting
    user in ``X-User-Id``.
    """

    async def moderate(request: web.Request) -> web.Response:
        check_bearer_token(request, bearer_token)
        moderator_id = acting_user_id(request)
        data = await read_json(request)
        decision = data.get("status")
        if not isinstance(decision, str):
            raise ValidationError("'status' must be 'published' or 'rejected'")
        comment = data.get("comment")
        if comment is not None and not isinstance(comment, str):
            raise ValidationError("'comment' must be a string")

        pub = event_service.moderate_event(
            store, moderator_id, request.match_info["event_id"], decision, comment, time_provider()
        )
        return web.json_response(pub.model_dump(mode="json"))

    async def hard_delete(request: web.Request) -> web.Response:
        check_bearer_token(request, bearer_token)
        admin = user_deletion.require_admin(store, acting_user_id(request))
        user = user_deletion.hard_delete_user(store, admin.id, request.match_info["user_id"])
        return web.json_response({"deleted": True, "user_id": user.id})

    async def bulk_delete(request: web.Request) -> web.Response:
        check_bearer_token(request, bearer_token)
        admin = user_deletion.require_admin(store, acting_user_id(request))
        data = await read_json(request)
        user_ids = data.get("user_ids")
        if not isinstance(user_ids, list) or not all(isinstance(uid, str) for uid in user_ids):
            raise ValidationError("'user_ids' must be a list of strings")
        reason = data.get("reason")
        if reason is not None and not isinstance(reason, str):
            raise ValidationError("'reason' must be a string")

        removed = user_deletion.bulk_delete_users(store, admin.id, user_ids, reason)
        return web.json_response({"deleted": removed})

    app.router.add_post("/api/admin/events/{event_id}/moderate", moderate)
    app.router.add_delete("/api/admin/users/{user_id}", hard_delete)
    app.router.add_post("/api/admin/users/bulk-delete", bulk_delete)
