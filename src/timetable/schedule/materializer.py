"""Expansion of weekly recurrence templates into concrete event instances.

Each template is expanded independently: find the first date on/after
``valid_from`` that falls on the template's weekday, then step by seven days
until ``valid_to``. The per-template streams are merged and sorted, so the
work is proportional to the number of occurrences rather than the number of
days in the range.

Materialization is additive. Running it twice over overlapping ranges yields
two independent batches; duplicate removal is a separate, explicit
operation (see ``ScheduleService.deduplicate``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import date, datetime, timedelta

from timetable.config import DEFAULT_EVENT_TITLE
from timetable.schedule.models import (
    DayOfWeek,
    EventInstance,
    GenerationEstimate,
    RecurrenceTemplate,
    TemplateEstimate,
    ValidatedRequest,
)

logger = logging.getLogger(__name__)

_WEEK = timedelta(days=7)


def first_occurrence(day_of_week: int, on_or_after: date) -> date:
    """Return the first date >= *on_or_after* falling on *day_of_week* (0 = Sunday)."""
    offset = (day_of_week - DayOfWeek.of(on_or_after)) % 7
    return on_or_after + timedelta(days=offset)


def occurrence_count(day_of_week: int, valid_from: date, valid_to: date) -> int:
    """Closed-form number of *day_of_week* dates in ``[valid_from, valid_to]``."""
    first = first_occurrence(day_of_week, valid_from)
    if first > valid_to:
        return 0
    return (valid_to - first).days // 7 + 1


def iter_occurrence_dates(
    template: RecurrenceTemplate, valid_from: date, valid_to: date
) -> Iterator[date]:
    current = first_occurrence(template.day_of_week, valid_from)
    while current <= valid_to:
        yield current
        current += _WEEK


def estimate(request: ValidatedRequest) -> GenerationEstimate:
    """Preview the batch *request* would produce without building it."""
    per_template: list[TemplateEstimate] = []
    starts: list[datetime] = []
    for template in request.templates:
        count = occurrence_count(template.day_of_week, request.valid_from, request.valid_to)
        first_start = last_start = None
        if count:
            first_day = first_occurrence(template.day_of_week, request.valid_from)
            last_day = first_day + _WEEK * (count - 1)
            first_start = datetime.combine(first_day, template.start_time)
            last_start = datetime.combine(last_day, template.start_time)
            starts.extend((first_start, last_start))
        per_template.append(
            TemplateEstimate(
                day_of_week=template.day_of_week,
                label=template.label(),
                count=count,
                first_start_at=first_start,
                last_start_at=last_start,
            )
        )

    return GenerationEstimate(
        request_id=request.request_id,
        estimated_count=sum(t.count for t in per_template),
        templates=per_template,
        first_start_at=min(starts, default=None),
        last_start_at=max(starts, default=None),
    )


def materialize(
    request: ValidatedRequest,
    *,
    default_title: str = DEFAULT_EVENT_TITLE,
) -> list[EventInstance]:
    """Expand *request* into id-less instances ordered by ``start_at``.

    The result is deterministic for a given request and its length always
    equals ``estimate(request).estimated_count``.
    """
    title = request.title or default_title
    instances = [
        EventInstance(
            owner_id=request.owner_id,
            start_at=datetime.combine(day, template.start_time),
            end_at=datetime.combine(day, template.end_time),
            is_active=True,
            attendance_required=request.attendance_required,
            title=title,
            location=request.location,
            category=request.category,
            generated_from=request.request_id,
        )
        for template in request.templates
        for day in iter_occurrence_dates(template, request.valid_from, request.valid_to)
    ]
    instances.sort(key=lambda instance: (instance.start_at, instance.end_at))
    logger.debug(
        "Materialized %d instance(s) for owner=%s request=%s",
        len(instances),
        request.owner_id,
        request.request_id,
    )
    return instances
