"""Error taxonomy shared by the schedule engine and status synchronization.

Hierarchy::

    TimetableError
    ├── ScheduleValidationError   one or more rule violations (all reported)
    ├── ScopeError                ids outside the caller's owner scope
    ├── StoreError                the backing store failed a read/write
    │   └── StatusRejectedError   the server of record refused a status value
    ├── TransientNetworkError     retryable channel failure (controller only)
    └── MutationFailedError       retry budget exhausted for a status mutation
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from timetable.schedule.models import ValidationIssue


class TimetableError(Exception):
    """Base class for all domain errors raised by timetable."""


class ScheduleValidationError(TimetableError):
    """Raised when a generation request violates one or more rules.

    Carries the complete, ordered list of issues so a form can highlight
    every problem at once.
    """

    def __init__(self, issues: Sequence[ValidationIssue]) -> None:
        self.issues = list(issues)
        summary = "; ".join(issue.message for issue in self.issues)
        super().__init__(f"Schedule request is invalid: {summary}")

    @property
    def messages(self) -> list[str]:
        return [issue.message for issue in self.issues]


class ScopeError(TimetableError):
    """Raised when referenced ids do not belong to the caller's owner scope.

    Attributes:
        owner_id: The scope the caller asked for.
        ids: Every offending id (missing or owned by someone else).
    """

    def __init__(self, owner_id: str, ids: Iterable[UUID]) -> None:
        self.owner_id = owner_id
        self.ids = list(ids)
        shown = ", ".join(str(i) for i in self.ids[:5])
        if len(self.ids) > 5:
            shown += f", ... ({len(self.ids)} total)"
        super().__init__(f"{len(self.ids)} id(s) outside scope of owner {owner_id!r}: {shown}")


class StoreError(TimetableError):
    """Raised when the backing store fails; nothing from the batch is committed."""


class StatusRejectedError(StoreError):
    """Raised when the server of record refuses a status write."""

    def __init__(self, field_key: str, value: Any, reason: str) -> None:
        self.field_key = field_key
        self.value = value
        self.reason = reason
        super().__init__(f"Status {field_key}={value!r} rejected: {reason}")


class TransientNetworkError(TimetableError):
    """Raised by remote status stores for failures worth retrying."""


class MutationFailedError(TimetableError):
    """Raised when a status mutation exhausts its retry budget.

    The local view has already been rolled back to ``previous``.
    """

    def __init__(
        self,
        *,
        entity_id: str,
        field_key: str,
        previous: Any,
        attempts: int,
        last_error: BaseException,
    ) -> None:
        self.entity_id = entity_id
        self.field_key = field_key
        self.previous = previous
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Mutation of {entity_id}/{field_key} failed after {attempts} attempt(s): "
            f"{last_error}"
        )
