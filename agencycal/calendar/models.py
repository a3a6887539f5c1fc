"""Data models for the calendar query engine.

Persisted rows (events, tasks) are read-only inputs owned by the surrounding
application. Occurrences and deadline entries are computed per request and
surface through the single ``CalendarEntry`` output model.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .datetime_utils import serialize_datetime_utc, to_utc

# Wire models use camelCase aliases while still accepting snake_case names.
_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Frequency(str, Enum):
    """Recurrence frequency units."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class Weekday(str, Enum):
    """Weekday tokens, Monday first."""

    MO = "MO"
    TU = "TU"
    WE = "WE"
    TH = "TH"
    FR = "FR"
    SA = "SA"
    SU = "SU"

    @property
    def index(self) -> int:
        """Python weekday number (Monday == 0)."""
        return _WEEKDAY_ORDER.index(self)

    @property
    def label(self) -> str:
        """English day name."""
        return _WEEKDAY_LABELS[self.index]


_WEEKDAY_ORDER = list(Weekday)
_WEEKDAY_LABELS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class TerminatorKind(str, Enum):
    """What stops a recurrence series."""

    NONE = "none"
    COUNT = "count"
    UNTIL = "until"


class RecurrenceRule(BaseModel):
    """Structured form of a recurrence string stored on an event."""

    frequency: Frequency
    interval: int = Field(default=1, ge=1, description="Every N frequency units")
    count: Optional[int] = Field(default=None, ge=1, description="Total occurrences in the series")
    until: Optional[datetime] = Field(default=None, description="Last instant an occurrence may start")
    by_day: tuple[Weekday, ...] = Field(default=(), description="Selected weekdays, ascending")
    by_day_present: bool = Field(default=False, description="BYDAY appeared in the source text")

    model_config = ConfigDict(frozen=True)

    @field_validator("until")
    @classmethod
    def _normalize_until(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value) if value is not None else None

    @field_validator("by_day")
    @classmethod
    def _sort_by_day(cls, value: tuple[Weekday, ...]) -> tuple[Weekday, ...]:
        return tuple(sorted(set(value), key=lambda day: day.index))

    @model_validator(mode="after")
    def _check_terminator(self) -> "RecurrenceRule":
        if self.count is not None and self.until is not None:
            raise ValueError("COUNT and UNTIL are mutually exclusive")
        return self

    @property
    def terminator(self) -> TerminatorKind:
        """Kind of end condition for this series."""
        if self.count is not None:
            return TerminatorKind.COUNT
        if self.until is not None:
            return TerminatorKind.UNTIL
        return TerminatorKind.NONE

    @property
    def uses_by_day(self) -> bool:
        """BYDAY only drives expansion for weekly rules."""
        return self.frequency == Frequency.WEEKLY and bool(self.by_day)

    def to_rrule_string(self) -> str:
        """Serialize back to the compact ``FREQ=...;INTERVAL=...`` grammar."""
        parts = [f"FREQ={self.frequency.value}", f"INTERVAL={self.interval}"]
        if self.count is not None:
            parts.append(f"COUNT={self.count}")
        if self.until is not None:
            parts.append(f"UNTIL={self.until.strftime('%Y%m%dT%H%M%SZ')}")
        if self.by_day:
            parts.append("BYDAY=" + ",".join(day.value for day in self.by_day))
        return ";".join(parts)


class EventType(str, Enum):
    """Calendar event categories."""

    MEETING = "MEETING"
    DEADLINE = "DEADLINE"
    MILESTONE = "MILESTONE"
    REMINDER = "REMINDER"


class UserRole(str, Enum):
    """Application roles relevant to calendar visibility."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    PM = "PM"
    MEMBER = "MEMBER"
    CLIENT = "CLIENT"


class AttendeeStatus(str, Enum):
    """Invitation response status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class TaskStatus(str, Enum):
    """Task workflow states; DONE is terminal."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"


class EntryKind(str, Enum):
    """Tag of the ``CalendarEntry`` union."""

    EVENT = "event"
    OCCURRENCE = "occurrence"
    DEADLINE = "deadline"


class Actor(BaseModel):
    """The authenticated user a query runs on behalf of."""

    user_id: str
    role: UserRole = UserRole.MEMBER

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        """Admins see every event and task."""
        return self.role in (UserRole.SUPER_ADMIN, UserRole.ADMIN)


class EventAttendee(BaseModel):
    """Registered user or external email invited to an event."""

    id: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    status: AttendeeStatus = AttendeeStatus.PENDING

    model_config = _WIRE_CONFIG


class CalendarEvent(BaseModel):
    """Persisted event row as read by the engine."""

    id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: EventType = EventType.MEETING
    start_time: datetime
    end_time: Optional[datetime] = None
    is_all_day: bool = False
    recurrence: Optional[str] = Field(default=None, max_length=500)
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    reminder_before: Optional[int] = Field(default=None, ge=0, le=10080)
    created_by_id: str
    attendees: list[EventAttendee] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = _WIRE_CONFIG

    @field_validator("start_time", "end_time", "created_at", "updated_at")
    @classmethod
    def _normalize_instants(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value) if value is not None else None

    @model_validator(mode="after")
    def _check_interval(self) -> "CalendarEvent":
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self

    @property
    def is_recurring(self) -> bool:
        """True when the row carries a recurrence string."""
        return bool(self.recurrence and self.recurrence.strip())


class TaskAssignee(BaseModel):
    """User assigned to a task."""

    user_id: str
    name: str
    email: str
    avatar: Optional[str] = None

    model_config = _WIRE_CONFIG


class Task(BaseModel):
    """Persisted task row; only the deadline-related fields matter here."""

    id: str
    title: str
    description: Optional[str] = None
    deadline: Optional[datetime] = None
    status: TaskStatus = TaskStatus.TODO
    project_id: Optional[str] = None
    created_by_id: str
    assignees: list[TaskAssignee] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = _WIRE_CONFIG

    @field_validator("deadline", "created_at", "updated_at")
    @classmethod
    def _normalize_instants(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_utc(value) if value is not None else None


class EntryAttendee(BaseModel):
    """Attendee as rendered on a calendar entry."""

    id: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    status: AttendeeStatus = AttendeeStatus.PENDING

    model_config = _WIRE_CONFIG


class CalendarEntry(BaseModel):
    """Unified output item: a plain event, a recurring occurrence or a deadline."""

    kind: EntryKind
    id: str
    title: str
    description: Optional[str] = None
    type: EventType
    start_time: datetime
    end_time: Optional[datetime] = None
    is_all_day: bool = False
    recurrence: Optional[str] = None
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    created_by_id: Optional[str] = None
    attendees: list[EntryAttendee] = Field(default_factory=list)

    # Recurring occurrence tracking
    is_recurring_occurrence: bool = False
    occurrence_date: Optional[datetime] = None
    anchor_event_id: Optional[str] = None

    # Deadline tracking
    source_task_id: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @classmethod
    def from_event(cls, event: CalendarEvent) -> "CalendarEntry":
        """Entry for a persisted event as stored (not expanded)."""
        return cls(
            kind=EntryKind.EVENT,
            id=event.id,
            title=event.title,
            description=event.description,
            type=event.type,
            start_time=event.start_time,
            end_time=event.end_time,
            is_all_day=event.is_all_day,
            recurrence=event.recurrence,
            location=event.location,
            meeting_link=event.meeting_link,
            project_id=event.project_id,
            task_id=event.task_id,
            created_by_id=event.created_by_id,
            attendees=[EntryAttendee(**attendee.model_dump()) for attendee in event.attendees],
        )

    @classmethod
    def occurrence_of(
        cls, event: CalendarEvent, start: datetime, end: Optional[datetime]
    ) -> "CalendarEntry":
        """Entry for one computed occurrence of a recurring event.

        Occurrences share the anchor's id; ``(anchor_event_id, start_time)``
        tells them apart.
        """
        return cls.from_event(event).model_copy(
            update={
                "kind": EntryKind.OCCURRENCE,
                "start_time": start,
                "end_time": end,
                "is_recurring_occurrence": True,
                "occurrence_date": start,
                "anchor_event_id": event.id,
            }
        )

    @field_serializer("start_time")
    def _serialize_start(self, dt: datetime) -> str:
        return serialize_datetime_utc(dt)

    @field_serializer("end_time", "occurrence_date", when_used="unless-none")
    def _serialize_optional(self, dt: datetime) -> str:
        return serialize_datetime_utc(dt)


class EventFilters(BaseModel):
    """Explicit, enumerated filter set for calendar queries."""

    type: Optional[EventType] = None
    project_id: Optional[str] = None
    search: Optional[str] = Field(default=None, max_length=200)

    model_config = ConfigDict(frozen=True)

    @field_validator("search", "project_id")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def includes_deadlines(self) -> bool:
        """Deadline entries are part of the result unless another type is requested."""
        return self.type is None or self.type == EventType.DEADLINE


class TimeWindow(BaseModel):
    """Closed ``[start, end]`` instant range a query is scoped to."""

    start: datetime
    end: datetime

    model_config = ConfigDict(frozen=True)

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return to_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "TimeWindow":
        if self.start > self.end:
            raise ValueError("window start must not be after window end")
        return self


class WindowPredicate(BaseModel):
    """Conservative candidate test for the event lookup.

    An event matches when its own interval overlaps the window, or when it
    recurs and its anchor starts no later than the window end. Broader than
    the final result; expansion does the precise filtering.
    """

    window_start: datetime
    window_end: datetime

    model_config = ConfigDict(frozen=True)

    @classmethod
    def for_window(cls, window: TimeWindow) -> "WindowPredicate":
        return cls(window_start=window.start, window_end=window.end)

    def overlaps(self, event: CalendarEvent) -> bool:
        """Closed-interval overlap of the stored interval with the window."""
        end = event.end_time or event.start_time
        return event.start_time <= self.window_end and end >= self.window_start

    def matches(self, event: CalendarEvent) -> bool:
        if self.overlaps(event):
            return True
        return event.is_recurring and event.start_time <= self.window_end


class Pagination(BaseModel):
    """1-based page request."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=50, ge=1)

    model_config = ConfigDict(frozen=True)

    @property
    def offset(self) -> int:
        """Index of the first item on this page."""
        return (self.page - 1) * self.limit


class EventListResponse(BaseModel):
    """Paginated result of a calendar query."""

    events: list[CalendarEntry] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 50
    total_pages: int = 0

    model_config = _WIRE_CONFIG
