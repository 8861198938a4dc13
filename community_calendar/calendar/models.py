"""Data models for community publications, events and calendar views."""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from ..core.timezone_utils import ensure_utc, now_utc as _now_utc


class RecurrenceType(str, Enum):
    """How an event repeats. The rule string is the source of truth for the pattern."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PublicationType(str, Enum):
    """Publication kinds shown in the community feed."""

    ANNOUNCEMENT = "announcement"
    EVENT = "event"
    HELP_REQUEST = "help_request"
    LOST_FOUND = "lost_found"
    RECOMMENDATION = "recommendation"
    QUESTION = "question"
    DISCUSSION = "discussion"


class PublicationStatus(str, Enum):
    """Moderation lifecycle: draft -> pending -> published / rejected."""

    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class UserRole(str, Enum):
    """Portal roles. The first five are staff roles."""

    ROOT = "Root"
    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    EDITOR = "Editor"
    MODERATOR = "Moderator"
    APARTMENT_OWNER = "ApartmentOwner"
    PARKING_OWNER = "ParkingOwner"
    TENANT = "Tenant"
    GUEST = "Guest"


STAFF_ROLES = frozenset(
    {UserRole.ROOT, UserRole.SUPER_ADMIN, UserRole.ADMIN, UserRole.EDITOR, UserRole.MODERATOR}
)
ADMIN_ROLES = frozenset({UserRole.ROOT, UserRole.SUPER_ADMIN, UserRole.ADMIN})


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


class Publication(BaseModel):
    """A community publication; events carry the start/end/recurrence fields."""

    id: str = Field(..., description="Publication ID")
    title: str = Field(..., max_length=255, description="Publication title")
    type: PublicationType = Field(default=PublicationType.ANNOUNCEMENT)
    status: PublicationStatus = Field(default=PublicationStatus.DRAFT)
    author_id: str = Field(..., description="Author user ID")
    location: Optional[str] = Field(default=None, max_length=500)
    is_pinned: bool = False
    publish_at: Optional[datetime] = Field(default=None, description="Deferred publication time")

    # Event fields
    start_at: Optional[datetime] = Field(default=None, description="Event start (anchor for rules)")
    end_at: Optional[datetime] = Field(default=None, description="Event end")
    all_day: bool = False
    recurrence_type: Optional[RecurrenceType] = Field(default=RecurrenceType.NONE)
    recurrence_rule: Optional[str] = Field(default=None, max_length=500, description="RRULE string")
    recurrence_until: Optional[datetime] = Field(default=None, description="Series end bound")

    # Moderation
    moderated_by: Optional[str] = None
    moderated_at: Optional[datetime] = None
    moderation_comment: Optional[str] = Field(default=None, max_length=500)

    created_at: datetime = Field(default_factory=_now_utc)
    updated_at: Optional[datetime] = None

    @field_validator(
        "publish_at",
        "start_at",
        "end_at",
        "recurrence_until",
        "moderated_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc_or_none(value)

    @property
    def is_event(self) -> bool:
        return self.type == PublicationType.EVENT

    @property
    def is_recurring(self) -> bool:
        """True when the event has a repeating type and a rule to expand."""
        return (
            self.recurrence_type is not None
            and self.recurrence_type != RecurrenceType.NONE
            and bool(self.recurrence_rule)
        )

    @field_serializer(
        "publish_at",
        "start_at",
        "end_at",
        "recurrence_until",
        "moderated_at",
        "created_at",
        "updated_at",
        when_used="unless-none",
    )
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()


class Occurrence(BaseModel):
    """One concrete civil date on which an event happens (derived, never stored)."""

    event_id: str
    occurrence_date: date

    model_config = ConfigDict(frozen=True)

    @field_serializer("occurrence_date")
    def serialize_date(self, d: date) -> str:
        return d.isoformat()


class AgendaEvent(BaseModel):
    """Event summary rendered as an agenda card."""

    id: str
    title: str
    all_day: bool = False
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    location: Optional[str] = None
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_rule: Optional[str] = None
    color_index: Optional[int] = None

    @classmethod
    def from_publication(cls, pub: Publication, color_index: Optional[int] = None) -> "AgendaEvent":
        return cls(
            id=pub.id,
            title=pub.title,
            all_day=pub.all_day,
            start_at=pub.start_at,
            end_at=pub.end_at,
            location=pub.location,
            recurrence_type=pub.recurrence_type,
            recurrence_rule=pub.recurrence_rule,
            color_index=color_index,
        )

    @field_serializer("start_at", "end_at", when_used="unless-none")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()


class AgendaDay(BaseModel):
    """Events grouped under one community-local date."""

    date: str = Field(..., description="YYYY-MM-DD in community-local time")
    events: list[AgendaEvent] = Field(default_factory=list)


class MonthlyEventRow(AgendaEvent):
    """One cell of the month grid: an event on one of its occurrence dates."""

    occurrence_date: str = Field(..., description="YYYY-MM-DD in community-local time")


class WeekDay(BaseModel):
    """A column of the two-week strip."""

    date: str
    weekday: int = Field(..., ge=0, le=6, description="0=Monday .. 6=Sunday")
    day_number: int
    is_today: bool = False
    is_weekend: bool = False


class WeekGrid(BaseModel):
    """Two-week strip starting Monday of the current week, with event dots."""

    today: str
    days: list[WeekDay]
    agenda: list[AgendaDay] = Field(default_factory=list)
    dot_map: dict[str, list[int]] = Field(default_factory=dict)
    event_date_map: dict[str, list[str]] = Field(default_factory=dict)


class UpcomingEvent(AgendaEvent):
    """Event that has not ended yet, with its next occurrence instant."""

    is_pinned: bool = False
    next_occurrence_at: Optional[datetime] = None

    @field_serializer("next_occurrence_at", when_used="unless-none")
    def serialize_next(self, dt: datetime) -> str:
        return dt.isoformat()


class CommunityUser(BaseModel):
    """Registered resident or staff member."""

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    roles: list[UserRole] = Field(default_factory=list)

    @property
    def is_staff(self) -> bool:
        return any(role in STAFF_ROLES for role in self.roles)

    @property
    def is_admin(self) -> bool:
        return any(role in ADMIN_ROLES for role in self.roles)

    @property
    def is_root(self) -> bool:
        return UserRole.ROOT in self.roles


class Listing(BaseModel):
    """Classified listing (apartment / parking); only ownership matters here."""

    id: str
    user_id: str
    title: str = ""


class NewsItem(BaseModel):
    """Staff-authored news article; only authorship matters here."""

    id: str
    author_id: str
    title: str = ""


class EventDraft(BaseModel):
    """Input for creating an event publication."""

    title: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, max_length=500)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    all_day: bool = False
    publish_at: Optional[datetime] = None
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_rule: Optional[str] = Field(default=None, max_length=500)
    recurrence_until: Optional[datetime] = None
    weekdays: Optional[list[int]] = Field(default=None, description="0=Mon..6=Sun for weekly rules")

    @field_validator("start_at", "end_at", "publish_at", "recurrence_until")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc_or_none(value)

    @field_validator("weekdays")
    @classmethod
    def _check_weekdays(cls, value: Optional[list[int]]) -> Optional[list[int]]:
        if value is not None and any(d < 0 or d > 6 for d in value):
            raise ValueError("weekdays must be between 0 (Monday) and 6 (Sunday)")
        return value


class EventUpdate(BaseModel):
    """Partial update of an event publication; unset fields are left untouched."""

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    location: Optional[str] = Field(default=None, max_length=500)
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    all_day: Optional[bool] = None
    publish_at: Optional[datetime] = None
    recurrence_type: Optional[RecurrenceType] = None
    recurrence_rule: Optional[str] = Field(default=None, max_length=500)
    recurrence_until: Optional[datetime] = None

    @field_validator("start_at", "end_at", "publish_at", "recurrence_until")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc_or_none(value)
