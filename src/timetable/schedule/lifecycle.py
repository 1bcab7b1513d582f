"""Bulk lifecycle operations over materialized event instances.

All operations take an explicit owner scope. Every referenced id must exist
and belong to that owner; otherwise the whole call is rejected with a
``ScopeError`` before anything is written.

Past instances may carry attendance history, so ``delete_future`` never
removes an instance whose ``start_at`` is before the call time. Such ids are
skipped and reported, not treated as errors.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime

from opentelemetry import trace

from timetable.core.metrics import TimetableMetrics
from timetable.errors import ScopeError
from timetable.schedule.models import (
    BulkAction,
    BulkLifecycleRequest,
    BulkLifecycleResult,
    EventInstance,
)
from timetable.schedule.store import ScheduleStore

logger = logging.getLogger(__name__)


def _unique(ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
    return list(dict.fromkeys(ids))


class LifecycleManager:
    """Activate, deactivate and future-only delete over sets of instances."""

    def __init__(
        self,
        store: ScheduleStore,
        *,
        clock: Callable[[], datetime] = datetime.now,
        metrics: TimetableMetrics | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._metrics = metrics or TimetableMetrics()

    async def _require_scope(
        self, owner_id: str, ids: Sequence[uuid.UUID]
    ) -> list[EventInstance]:
        found = await self._store.get_instances_by_ids(ids)
        owned = {instance.id for instance in found if instance.owner_id == owner_id}
        outside = [i for i in ids if i not in owned]
        if outside:
            logger.warning(
                "Rejected lifecycle batch for owner=%s: %d of %d id(s) out of scope",
                owner_id,
                len(outside),
                len(ids),
            )
            raise ScopeError(owner_id, outside)
        return found

    async def _set_active(
        self, owner_id: str, ids: Iterable[uuid.UUID], is_active: bool
    ) -> BulkLifecycleResult:
        action = BulkAction.ACTIVATE if is_active else BulkAction.DEACTIVATE
        unique_ids = _unique(ids)
        tracer = trace.get_tracer("timetable")
        with tracer.start_as_current_span(f"timetable.lifecycle.{action}") as span:
            span.set_attribute("requested", len(unique_ids))
            if not unique_ids:
                return BulkLifecycleResult(action=action, requested=0, affected=0)

            await self._require_scope(owner_id, unique_ids)
            affected = await self._store.update_active_flag(owner_id, unique_ids, is_active)
            span.set_attribute("affected", affected)

        self._metrics.record_lifecycle(action, affected=affected)
        logger.info("%s: owner=%s affected=%d", action, owner_id, affected)
        return BulkLifecycleResult(action=action, requested=len(unique_ids), affected=affected)

    async def activate(self, owner_id: str, ids: Iterable[uuid.UUID]) -> BulkLifecycleResult:
        """Mark instances active regardless of their start time."""
        return await self._set_active(owner_id, ids, True)

    async def deactivate(self, owner_id: str, ids: Iterable[uuid.UUID]) -> BulkLifecycleResult:
        """Mark instances inactive regardless of their start time."""
        return await self._set_active(owner_id, ids, False)

    async def delete_future(self, owner_id: str, ids: Iterable[uuid.UUID]) -> BulkLifecycleResult:
        """Delete the instances among *ids* starting at or after now.

        Returns ``requested``/``affected``/``skipped`` with
        ``affected + skipped == requested``. ``skipped`` counts the ids whose
        ``start_at`` was before now when the batch was scope-checked. A future
        id that another caller removed between the scope check and the delete
        is counted as affected, since it is gone either way.
        """
        unique_ids = _unique(ids)
        action = BulkAction.DELETE_FUTURE
        tracer = trace.get_tracer("timetable")
        with tracer.start_as_current_span("timetable.lifecycle.delete_future") as span:
            span.set_attribute("requested", len(unique_ids))
            if not unique_ids:
                return BulkLifecycleResult(action=action, requested=0, affected=0, skipped=0)

            scoped = await self._require_scope(owner_id, unique_ids)
            now = self._clock()
            skipped = sum(1 for instance in scoped if instance.start_at < now)
            removed = await self._store.delete_by_ids(owner_id, unique_ids, not_before=now)
            affected = len(unique_ids) - skipped
            if len(removed) < affected:
                logger.warning(
                    "delete_future: owner=%s, %d future instance(s) were already deleted",
                    owner_id,
                    affected - len(removed),
                )
            span.set_attribute("affected", affected)
            span.set_attribute("skipped", skipped)

        self._metrics.record_lifecycle(action, affected=affected, skipped=skipped)
        if skipped:
            logger.info(
                "delete_future: owner=%s removed=%d, kept %d past instance(s)",
                owner_id,
                affected,
                skipped,
            )
        else:
            logger.info("delete_future: owner=%s removed=%d", owner_id, affected)
        return BulkLifecycleResult(
            action=action, requested=len(unique_ids), affected=affected, skipped=skipped
        )

    async def apply(self, owner_id: str, request: BulkLifecycleRequest) -> BulkLifecycleResult:
        """Dispatch a caller-facing bulk lifecycle request."""
        if request.action is BulkAction.ACTIVATE:
            return await self.activate(owner_id, request.ids)
        if request.action is BulkAction.DEACTIVATE:
            return await self.deactivate(owner_id, request.ids)
        return await self.delete_future(owner_id, request.ids)
