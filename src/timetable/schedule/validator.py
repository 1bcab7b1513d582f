"""Rule validation for schedule generation requests.

Every rule is evaluated independently and the caller receives the full,
ordered list of violations. A rule whose inputs are absent (for example the
date ordering rule when a date is missing) is skipped rather than reported
twice. Validation is pure: ``today`` is always passed in.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date

from timetable.config import RecurrenceRules
from timetable.errors import ScheduleValidationError
from timetable.schedule.models import (
    DayOfWeek,
    ScheduleGenerationRequest,
    ValidatedRequest,
    ValidationIssue,
)

DEFAULT_RULES = RecurrenceRules()


def _issue(code: str, field: str, message: str) -> ValidationIssue:
    return ValidationIssue(code=code, field=field, message=message)


def _check_dates(
    request: ScheduleGenerationRequest, today: date, rules: RecurrenceRules
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    valid_from, valid_to = request.valid_from, request.valid_to

    if valid_from is None:
        issues.append(_issue("missing_valid_from", "valid_from", "Start date is required"))
    if valid_to is None:
        issues.append(_issue("missing_valid_to", "valid_to", "End date is required"))

    if valid_from is not None and valid_to is not None and valid_from > valid_to:
        issues.append(
            _issue(
                "inverted_range",
                "valid_to",
                f"End date {valid_to.isoformat()} is before start date {valid_from.isoformat()}",
            )
        )

    if valid_from is not None and valid_from < today:
        issues.append(
            _issue(
                "start_in_past",
                "valid_from",
                f"Start date {valid_from.isoformat()} is in the past",
            )
        )

    if valid_from is not None and valid_to is not None:
        span_days = (valid_to - valid_from).days
        if span_days > rules.max_range_days:
            issues.append(
                _issue(
                    "range_too_long",
                    "valid_to",
                    f"Date range spans {span_days} days; at most "
                    f"{rules.max_range_days} days are allowed",
                )
            )
    return issues


def _check_templates(
    request: ScheduleGenerationRequest, rules: RecurrenceRules
) -> list[ValidationIssue]:
    if not request.templates:
        return [_issue("no_templates", "templates", "At least one schedule day is required")]

    window_issues: list[ValidationIssue] = []
    duration_issues: list[ValidationIssue] = []
    for index, template in enumerate(request.templates):
        field = f"templates[{index}]"
        if template.start_time >= template.end_time:
            window_issues.append(
                _issue(
                    "end_before_start",
                    f"{field}.end_time",
                    f"{template.weekday.name.title()}: end time "
                    f"{template.end_time:%H:%M} must be after start time "
                    f"{template.start_time:%H:%M}",
                )
            )
            continue

        duration = template.duration_minutes
        if not rules.min_duration_minutes <= duration <= rules.max_duration_minutes:
            duration_issues.append(
                _issue(
                    "duration_out_of_bounds",
                    f"{field}.end_time",
                    f"{template.weekday.name.title()}: duration of {duration} minutes is "
                    f"outside {rules.min_duration_minutes}-{rules.max_duration_minutes} minutes",
                )
            )

    by_day: dict[int, list[int]] = defaultdict(list)
    for index, template in enumerate(request.templates):
        by_day[template.day_of_week].append(index)

    uniqueness_issues = [
        _issue(
            "duplicate_day_of_week",
            f"templates[{indexes[1]}].day_of_week",
            f"{DayOfWeek(day).name.title()} appears in {len(indexes)} schedule days; "
            "each weekday may be used once",
        )
        for day, indexes in sorted(by_day.items())
        if len(indexes) > 1
    ]

    return window_issues + duration_issues + uniqueness_issues


def check_request(
    request: ScheduleGenerationRequest,
    *,
    today: date,
    rules: RecurrenceRules = DEFAULT_RULES,
) -> list[ValidationIssue]:
    """Return every rule violated by *request*, in rule order (empty when valid)."""
    return _check_dates(request, today, rules) + _check_templates(request, rules)


def validate_request(
    request: ScheduleGenerationRequest,
    *,
    today: date,
    rules: RecurrenceRules = DEFAULT_RULES,
) -> ValidatedRequest:
    """Validate *request* and return the equivalent ValidatedRequest.

    Raises:
        ScheduleValidationError: carrying the complete list of issues.
    """
    issues = check_request(request, today=today, rules=rules)
    if issues:
        raise ScheduleValidationError(issues)
    return ValidatedRequest.model_validate(request.model_dump())
