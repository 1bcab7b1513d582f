"""Schedule engine data models.

Request models are deliberately permissive about *rules* (missing dates,
inverted windows, duplicate weekdays) so the validator can report every
violation at once. Only structural problems (unparseable times, weekday out
of range) are rejected by pydantic itself.
"""

from __future__ import annotations

import math
import re
import uuid
from datetime import date, datetime, time
from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class DayOfWeek(IntEnum):
    """Weekday numbering with Sunday as 0."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @classmethod
    def of(cls, day: date) -> DayOfWeek:
        # date.weekday() counts Monday as 0.
        return cls((day.weekday() + 1) % 7)


class EventCategory(StrEnum):
    LESSON = "LESSON"
    LECTURE = "LECTURE"
    PRACTICE = "PRACTICE"
    EXAM = "EXAM"
    OTHER = "OTHER"

    @property
    def color(self) -> str:
        return _CATEGORY_COLORS[self]


_CATEGORY_COLORS = {
    EventCategory.LESSON: "#3B82F6",
    EventCategory.LECTURE: "#8B5CF6",
    EventCategory.PRACTICE: "#10B981",
    EventCategory.EXAM: "#EF4444",
    EventCategory.OTHER: "#6B7280",
}


class TimeFilter(StrEnum):
    """Time partition of a listing; "past" is derived from start_at vs now."""

    CURRENT = "current"
    PAST = "past"


class ActiveFilter(StrEnum):
    ALL = "all"
    ACTIVE = "active"
    INACTIVE = "inactive"


class BulkAction(StrEnum):
    ACTIVATE = "activate"
    DEACTIVATE = "deactivate"
    DELETE_FUTURE = "delete_future"


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

# ---------------------------------------------------------------------------
# Generation requests
# ---------------------------------------------------------------------------


class RecurrenceTemplate(BaseModel):
    """One weekly rule: a weekday plus a wall-clock time window."""

    model_config = ConfigDict(frozen=True)

    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time

    @field_validator("start_time", "end_time")
    @classmethod
    def _truncate_to_minute(cls, value: time) -> time:
        if value.tzinfo is not None:
            raise ValueError("times must be naive wall-clock values")
        return value.replace(second=0, microsecond=0)

    @property
    def weekday(self) -> DayOfWeek:
        return DayOfWeek(self.day_of_week)

    @property
    def duration_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    def label(self) -> str:
        return (
            f"{self.weekday.name.title()} "
            f"{self.start_time:%H:%M}-{self.end_time:%H:%M}"
        )


class ScheduleGenerationRequest(BaseModel):
    """Caller input for materializing a weekly schedule."""

    request_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    owner_id: str = Field(min_length=1)
    valid_from: date | None = None
    valid_to: date | None = None
    templates: list[RecurrenceTemplate] = Field(default_factory=list)
    title: str | None = None
    location: str | None = None
    category: EventCategory = EventCategory.LESSON
    attendance_required: bool = False

    @field_validator("title", "location")
    @classmethod
    def _normalize_optional_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None


class ValidatedRequest(ScheduleGenerationRequest):
    """A generation request that satisfied every rule.

    Only ``timetable.schedule.validator`` constructs these.
    """

    model_config = ConfigDict(frozen=True)

    valid_from: date
    valid_to: date


class ValidationIssue(BaseModel):
    """A single rule violation, addressable by form field."""

    model_config = ConfigDict(frozen=True)

    code: str
    field: str
    message: str


# ---------------------------------------------------------------------------
# Event instances
# ---------------------------------------------------------------------------


class EventInstance(BaseModel):
    """A concrete, materialized occurrence of a recurrence template.

    ``id`` is ``None`` until the store assigns one on insert.
    """

    id: uuid.UUID | None = None
    owner_id: str
    start_at: datetime
    end_at: datetime
    is_active: bool = True
    attendance_required: bool = False
    title: str
    location: str | None = None
    category: EventCategory = EventCategory.LESSON
    generated_from: uuid.UUID | None = None
    created_at: datetime | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def color(self) -> str:
        return self.category.color

    def is_past(self, now: datetime) -> bool:
        return self.start_at < now


class TemplateEstimate(BaseModel):
    day_of_week: int
    label: str
    count: int
    first_start_at: datetime | None = None
    last_start_at: datetime | None = None


class GenerationEstimate(BaseModel):
    """Closed-form preview of what a generation request would create."""

    request_id: uuid.UUID
    estimated_count: int
    templates: list[TemplateEstimate]
    first_start_at: datetime | None = None
    last_start_at: datetime | None = None


class GenerationResult(BaseModel):
    created_count: int
    instances: list[EventInstance]


# ---------------------------------------------------------------------------
# Bulk lifecycle
# ---------------------------------------------------------------------------


class BulkLifecycleRequest(BaseModel):
    action: BulkAction
    ids: list[uuid.UUID] = Field(min_length=1)

    @field_validator("action", mode="before")
    @classmethod
    def _accept_camel_case(cls, value: Any) -> Any:
        # "deleteFuture" and "delete-future" are accepted spellings.
        if not isinstance(value, str):
            return value
        normalized = _CAMEL_BOUNDARY.sub("_", value.strip())
        return normalized.replace("-", "_").lower()


class BulkLifecycleResult(BaseModel):
    action: BulkAction
    requested: int
    affected: int
    skipped: int = 0


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class InstanceQuery(BaseModel):
    """Normalized listing query handed to a ScheduleStore."""

    model_config = ConfigDict(frozen=True)

    owner_id: str
    time_filter: TimeFilter
    now: datetime
    offset: int = Field(ge=0)
    limit: int = Field(ge=1)
    active_filter: ActiveFilter = ActiveFilter.ALL
    search: str | None = None
    surface_active: bool = False


class PagedResult(BaseModel):
    items: list[EventInstance]
    total: int
    page: int
    page_size: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


class ScheduleStats(BaseModel):
    total: int
    active: int
    inactive: int
