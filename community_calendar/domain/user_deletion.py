"""Dependency-checked permanent deletion of user accounts.

A user can only be removed once nothing references them: any authored
publication, owned listing or authored news article blocks the deletion
until an administrator reassigns or removes that content.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..calendar.models import CommunityUser
from ..exceptions import ForbiddenError, NotFoundError, PreconditionFailedError, ValidationError
from .community_store import CommunityStore

logger = logging.getLogger(__name__)

MAX_BULK_DELETE = 50


def require_admin(store: CommunityStore, user_id: str) -> CommunityUser:
    """Return the acting user if they hold an administrative role.

    Raises:
        ForbiddenError: Unknown user or no Root/SuperAdmin/Admin role
    """
    user = store.get_user(user_id)
    if user is None or not user.is_admin:
        raise ForbiddenError("Administrator role required")
    return user


def dependency_counts(store: CommunityStore, user_id: str) -> dict[str, int]:
    """Count content that would be orphaned by deleting ``user_id``.

    Only non-zero kinds are included, so an empty dict means deletable.
    """
    counts = {
        "publications": store.count_publications_by_author(user_id),
        "listings": store.count_listings_by_owner(user_id),
        "news": store.count_news_by_author(user_id),
    }
    return {kind: count for kind, count in counts.items() if count > 0}


def _describe(counts: dict[str, int]) -> str:
    return ", ".join(f"{kind}: {count}" for kind, count in counts.items())


def hard_delete_user(store: CommunityStore, acting_user_id: str, user_id: str) -> CommunityUser:
    """Permanently delete one user and their auth-side records.

    Raises:
        ForbiddenError: Self-deletion or a Root target
        NotFoundError: Unknown user
        PreconditionFailedError: The user still owns content
    """
    if user_id == acting_user_id:
        raise ForbiddenError("You cannot delete your own account")

    with store.transaction():
        user = store.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        if user.is_root:
            raise ForbiddenError("Root users cannot be deleted")

        counts = dependency_counts(store, user_id)
        if counts:
            raise PreconditionFailedError(
                f"User {user_id} still has content ({_describe(counts)}); reassign or delete it first",
                dependencies={user_id: counts},
            )

        store.delete_user_records([user_id])

    logger.info("User %s hard-deleted by %s", user_id, acting_user_id)
    return user


def bulk_delete_users(
    store: CommunityStore,
    acting_user_id: str,
    user_ids: list[str],
    reason: Optional[str] = None,
) -> int:
    """Permanently delete up to 50 users in one all-or-nothing transaction.

    Every target is checked before anything is removed; one blocked user
    fails the whole batch.

    Returns:
        Number of users removed.
    """
    unique_ids = list(dict.fromkeys(user_ids))
    if not unique_ids or len(unique_ids) > MAX_BULK_DELETE:
        raise ValidationError(f"Between 1 and {MAX_BULK_DELETE} users must be selected")
    if acting_user_id in unique_ids:
        raise ForbiddenError("You cannot delete your own account")

    with store.transaction():
        users = [user for user in (store.get_user(uid) for uid in unique_ids) if user is not None]
        if any(user.is_root for user in users):
            raise ForbiddenError("Root users cannot be deleted")

        blocked: dict[str, dict[str, int]] = {}
        for user in users:
            counts = dependency_counts(store, user.id)
            if counts:
                blocked[user.id] = counts
        if blocked:
            details = "; ".join(f"{uid} ({_describe(counts)})" for uid, counts in blocked.items())
            raise PreconditionFailedError(
                f"{len(blocked)} user(s) still have content: {details}",
                dependencies=blocked,
            )

        removed = store.delete_user_records([user.id for user in users])

    logger.info(
        "Bulk-deleted %d users by %s (reason: %s)", removed, acting_user_id, reason or "not given"
    )
    return removed
