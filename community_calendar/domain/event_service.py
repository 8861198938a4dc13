"""Event authoring and moderation lifecycle.

Staff authors publish directly; resident submissions wait in ``pending``
until a moderator publishes or rejects them.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

import pydantic

from ..calendar.models import (
    CommunityUser,
    EventDraft,
    EventUpdate,
    Publication,
    PublicationStatus,
    PublicationType,
    RecurrenceType,
)
from ..calendar.rrule_builder import build_rrule_string
from ..calendar.rrule_expander import RRuleParseError, parse_rrule
from ..exceptions import ForbiddenError, NotFoundError, ValidationError
from .community_store import CommunityStore

logger = logging.getLogger(__name__)

MAX_MODERATION_COMMENT = 500
MODERATION_DECISIONS = (PublicationStatus.PUBLISHED, PublicationStatus.REJECTED)


def _require_user(store: CommunityStore, user_id: str) -> CommunityUser:
    if not user_id:
        raise ForbiddenError("Acting user is required")
    user = store.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def _require_event(store: CommunityStore, event_id: str) -> Publication:
    pub = store.get_publication(event_id)
    if pub is None or pub.type != PublicationType.EVENT:
        raise NotFoundError(f"Event {event_id} not found")
    return pub


def _resolve_recurrence(
    recurrence_type: RecurrenceType,
    rule: Optional[str],
    start_at: datetime,
    weekdays: Optional[list[int]],
    until: Optional[datetime],
) -> tuple[Optional[str], Optional[datetime]]:
    """Return the rule string and series bound to store for an event.

    A repeating type without an explicit rule gets one built from the start
    date. The series bound defaults to the rule's UNTIL.
    """
    if recurrence_type == RecurrenceType.NONE:
        return None, None

    if not rule:
        rule = build_rrule_string(recurrence_type, start_at, weekdays=weekdays, until=until)

    try:
        parsed = parse_rrule(rule)
    except RRuleParseError as e:
        raise ValidationError(f"Invalid recurrence rule: {e}") from e

    if until is None and parsed.until is not None:
        until = parsed.effective_until()
    if until is not None and until < start_at:
        raise ValidationError("recurrence_until must not be before start_at")
    return rule, until


def _apply(pub: Publication, changes: dict[str, Any]) -> Publication:
    """Return ``pub`` with ``changes`` applied, validated as a whole."""
    try:
        return Publication.model_validate({**pub.model_dump(), **changes})
    except pydantic.ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise ValidationError(f"Invalid value for: {', '.join(fields)}") from e


def _check_times(start_at: Optional[datetime], end_at: Optional[datetime]) -> datetime:
    if start_at is None:
        raise ValidationError("start_at is required for events")
    if end_at is not None and end_at < start_at:
        raise ValidationError("end_at must not be before start_at")
    return start_at


def create_event(store: CommunityStore, author_id: str, draft: EventDraft, now: datetime) -> Publication:
    """Create an event publication.

    Raises:
        ValidationError: Missing start, end before start, or unusable rule
        NotFoundError: Unknown author
    """
    author = _require_user(store, author_id)
    start_at = _check_times(draft.start_at, draft.end_at)
    rule, until = _resolve_recurrence(
        draft.recurrence_type, draft.recurrence_rule, start_at, draft.weekdays, draft.recurrence_until
    )

    status = PublicationStatus.PUBLISHED if author.is_staff else PublicationStatus.PENDING
    pub = Publication(
        id=str(uuid.uuid4()),
        title=draft.title,
        type=PublicationType.EVENT,
        status=status,
        author_id=author.id,
        location=draft.location,
        publish_at=draft.publish_at,
        start_at=start_at,
        end_at=draft.end_at,
        all_day=draft.all_day,
        recurrence_type=draft.recurrence_type,
        recurrence_rule=rule,
        recurrence_until=until,
        created_at=now,
    )
    store.put_publication(pub)
    logger.info("Event %s created by %s with status %s", pub.id, author.id, status.value)
    return pub


def update_event(
    store: CommunityStore, acting_user_id: str, event_id: str, changes: EventUpdate, now: datetime
) -> Publication:
    """Apply a partial update to an event.

    Authors may edit their own events; staff may edit any. A resident edit
    of a published event sends it back to moderation.
    """
    user = _require_user(store, acting_user_id)
    pub = _require_event(store, event_id)
    if pub.author_id != user.id and not user.is_staff:
        raise ForbiddenError("You can only edit your own events")

    fields = changes.model_dump(exclude_unset=True)
    merged = _apply(pub, fields)
    start_at = _check_times(merged.start_at, merged.end_at)

    recurrence_type = merged.recurrence_type or RecurrenceType.NONE
    rule = merged.recurrence_rule
    type_changed = recurrence_type != pub.recurrence_type
    if "recurrence_rule" not in fields and type_changed:
        # a new repeat kind without an explicit rule gets a freshly built one
        rule = None
    until = merged.recurrence_until
    if ("recurrence_rule" in fields or type_changed) and "recurrence_until" not in fields:
        # the series bound is re-derived from the new rule
        until = None
    rule, until = _resolve_recurrence(recurrence_type, rule, start_at, None, until)

    update: dict[str, object] = {
        **fields,
        "recurrence_type": recurrence_type,
        "recurrence_rule": rule,
        "recurrence_until": until,
        "updated_at": now,
    }
    if not user.is_staff and pub.status == PublicationStatus.PUBLISHED:
        update["status"] = PublicationStatus.PENDING
        logger.info("Event %s edited by resident %s; returned to moderation", pub.id, user.id)

    updated = _apply(pub, update)
    store.put_publication(updated)
    logger.debug("Event %s updated fields: %s", pub.id, sorted(fields))
    return updated


def submit_event(store: CommunityStore, acting_user_id: str, event_id: str, now: datetime) -> Publication:
    """Send a draft to moderation."""
    user = _require_user(store, acting_user_id)
    pub = _require_event(store, event_id)
    if pub.author_id != user.id:
        raise ForbiddenError("You can only submit your own events")
    if pub.status != PublicationStatus.DRAFT:
        raise ValidationError("Only drafts can be submitted for moderation")

    updated = pub.model_copy(update={"status": PublicationStatus.PENDING, "updated_at": now})
    store.put_publication(updated)
    logger.info("Event %s submitted for moderation", pub.id)
    return updated


def moderate_event(
    store: CommunityStore,
    moderator_id: str,
    event_id: str,
    decision: PublicationStatus | str,
    comment: Optional[str],
    now: datetime,
) -> Publication:
    """Publish or reject an event, recording who decided and when."""
    moderator = _require_user(store, moderator_id)
    if not moderator.is_staff:
        raise ForbiddenError("Only staff can moderate publications")

    try:
        status = PublicationStatus(decision)
    except ValueError as e:
        raise ValidationError(f"Unknown moderation decision {decision!r}") from e
    if status not in MODERATION_DECISIONS:
        raise ValidationError("Moderation decision must be 'published' or 'rejected'")
    if comment is not None and len(comment) > MAX_MODERATION_COMMENT:
        raise ValidationError(f"Moderation comment must be at most {MAX_MODERATION_COMMENT} characters")

    pub = _require_event(store, event_id)
    updated = pub.model_copy(
        update={
            "status": status,
            "moderated_by": moderator.id,
            "moderated_at": now,
            "moderation_comment": comment,
            "updated_at": now,
        }
    )
    store.put_publication(updated)
    logger.info("Event %s moderated by %s: %s", pub.id, moderator.id, status.value)
    return updated


def delete_event(store: CommunityStore, acting_user_id: str, event_id: str) -> None:
    """Delete an event; only its author may do so."""
    user = _require_user(store, acting_user_id)
    pub = _require_event(store, event_id)
    if pub.author_id != user.id:
        raise ForbiddenError("You can only delete your own events")
    store.delete_publication(pub.id)
    logger.info("Event %s deleted by %s", pub.id, user.id)
