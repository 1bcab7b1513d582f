"""Status field contract and the client-side view mutations are applied to.

Status fields are small closed enums keyed by ``(entity_id, field_key)``:
attendance marks, checklist progress and task progress. The server of record
canonicalizes every written value and rejects anything outside the enum.
"""

from __future__ import annotations

import abc
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from timetable.errors import StatusRejectedError

logger = logging.getLogger(__name__)

STATUS_FIELDS: dict[str, frozenset[str]] = {
    "attendance": frozenset(
        {"PENDING", "ATTENDING", "NOT_ATTENDING", "MAYBE", "ATTENDED", "ABSENT"}
    ),
    "checklist_progress": frozenset(
        {"COMPLETED", "NOT_COMPLETED", "NOT_NEEDED", "HAS_QUESTIONS"}
    ),
    "task_progress": frozenset({"NOT_STARTED", "IN_PROGRESS", "DONE"}),
}


class StatusField(BaseModel):
    entity_id: str
    field_key: str
    value: str
    updated_at: datetime | None = None


def canonicalize_status(field_key: str, value: Any) -> str:
    """Return the canonical spelling of *value* for *field_key*.

    Raises:
        StatusRejectedError: unknown field key, non-string value, or a value
            outside the field's enum.
    """
    allowed = STATUS_FIELDS.get(field_key)
    if allowed is None:
        raise StatusRejectedError(field_key, value, "unknown status field")
    if not isinstance(value, str):
        raise StatusRejectedError(field_key, value, "value must be a string")
    canonical = value.strip().upper()
    if canonical not in allowed:
        expected = ", ".join(sorted(allowed))
        raise StatusRejectedError(field_key, value, f"expected one of {expected}")
    return canonical


class StatusStore(abc.ABC):
    """Server of record for status fields."""

    @abc.abstractmethod
    async def read_status(self, entity_id: str, field_key: str) -> str | None:
        """Return the current canonical value, or None if never written."""

    @abc.abstractmethod
    async def write_status(self, entity_id: str, field_key: str, value: str) -> str:
        """Persist *value* and return the canonical value the server stored."""


StatusListener = Callable[[str, str, Any], None]


class LocalStatusView:
    """The caller-visible copy of status values.

    The mutation controller writes here optimistically; listeners (a UI,
    a cache) are notified on every change.
    """

    def __init__(self, initial: dict[tuple[str, str], Any] | None = None) -> None:
        self._values: dict[tuple[str, str], Any] = dict(initial or {})
        self._listeners: list[StatusListener] = []

    def get(self, entity_id: str, field_key: str) -> Any:
        return self._values.get((entity_id, field_key))

    def set(self, entity_id: str, field_key: str, value: Any) -> None:
        key = (entity_id, field_key)
        if value is None:
            self._values.pop(key, None)
        else:
            self._values[key] = value
        for listener in list(self._listeners):
            try:
                listener(entity_id, field_key, value)
            except Exception:
                logger.exception(
                    "Status listener failed for %s/%s", entity_id, field_key
                )

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def snapshot(self) -> dict[tuple[str, str], Any]:
        return dict(self._values)
