"""Recurring schedule engine: validation, materialization, lifecycle, query."""

from timetable.schedule.models import (
    BulkAction,
    BulkLifecycleRequest,
    BulkLifecycleResult,
    DayOfWeek,
    EventCategory,
    EventInstance,
    PagedResult,
    RecurrenceTemplate,
    ScheduleGenerationRequest,
    TimeFilter,
)
from timetable.schedule.service import ScheduleService

__all__ = [
    "BulkAction",
    "BulkLifecycleRequest",
    "BulkLifecycleResult",
    "DayOfWeek",
    "EventCategory",
    "EventInstance",
    "PagedResult",
    "RecurrenceTemplate",
    "ScheduleGenerationRequest",
    "ScheduleService",
    "TimeFilter",
]
