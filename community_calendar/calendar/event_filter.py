"""Predicates selecting which publications feed each calendar view."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable

from .models import Publication, PublicationStatus

logger = logging.getLogger(__name__)


def is_publicly_visible(pub: Publication, now: datetime) -> bool:
    """Published event whose deferred publication time (if any) has passed."""
    if not pub.is_event or pub.status != PublicationStatus.PUBLISHED:
        return False
    if pub.publish_at is not None and pub.publish_at > now:
        return False
    return pub.start_at is not None


def _series_active_since(pub: Publication, instant: datetime) -> bool:
    return pub.recurrence_until is None or pub.recurrence_until >= instant


def has_not_ended(pub: Publication, now: datetime) -> bool:
    """Event still ahead or in progress: end in the future, or no end and start in the future."""
    if pub.start_at is None:
        return False
    if pub.is_recurring:
        return _series_active_since(pub, now)
    if pub.end_at is not None:
        return pub.end_at >= now
    return pub.start_at >= now


def overlaps_agenda_window(pub: Publication, now: datetime, window_end: datetime) -> bool:
    """Candidate for the agenda starting now and ending at ``window_end``."""
    if pub.start_at is None:
        return False
    if pub.is_recurring:
        return _series_active_since(pub, now)
    return pub.start_at <= window_end and has_not_ended(pub, now)


def overlaps_month_window(pub: Publication, month_start: datetime, month_end: datetime) -> bool:
    """Candidate for the month grid ``[month_start, month_end)``."""
    if pub.start_at is None or pub.start_at > month_end:
        return False
    if pub.is_recurring:
        return _series_active_since(pub, month_start)
    if pub.end_at is not None:
        return pub.end_at >= month_start
    return pub.start_at >= month_start


def visible_events(publications: Iterable[Publication], now: datetime) -> list[Publication]:
    """Publicly visible events ordered by start time."""
    events = [pub for pub in publications if is_publicly_visible(pub, now)]
    events.sort(key=lambda pub: (pub.start_at, pub.id))
    logger.debug("Selected %d visible events", len(events))
    return events
