"""Storage contract consumed by the schedule engine.

Implementations must make every write method atomic: either the whole batch
is applied or none of it is, and concurrent readers never observe a partial
batch. Failures surface as ``StoreError``.
"""

from __future__ import annotations

import abc
import uuid
from collections.abc import Sequence
from datetime import datetime

from timetable.schedule.models import EventInstance, InstanceQuery, ScheduleStats


class ScheduleStore(abc.ABC):
    """Persistence boundary for materialized event instances."""

    @abc.abstractmethod
    async def list_instances(self, query: InstanceQuery) -> tuple[list[EventInstance], int]:
        """Return one page of instances matching *query* plus the unpaged total.

        Ordering: ascending ``start_at`` for ``current``, descending for ``past``.
        """

    @abc.abstractmethod
    async def get_instances_by_ids(self, ids: Sequence[uuid.UUID]) -> list[EventInstance]:
        """Return the instances that exist among *ids* (any owner, any order)."""

    @abc.abstractmethod
    async def insert_batch(self, instances: Sequence[EventInstance]) -> list[EventInstance]:
        """Persist *instances* atomically and return them with ids assigned."""

    @abc.abstractmethod
    async def update_active_flag(
        self, owner_id: str, ids: Sequence[uuid.UUID], is_active: bool
    ) -> int:
        """Set ``is_active`` on the owner's instances among *ids*; return the count."""

    @abc.abstractmethod
    async def delete_by_ids(
        self,
        owner_id: str,
        ids: Sequence[uuid.UUID],
        *,
        not_before: datetime | None = None,
    ) -> list[uuid.UUID]:
        """Delete the owner's instances among *ids*; return the removed ids.

        When *not_before* is given only instances with ``start_at >= not_before``
        are removed, evaluated in the same atomic statement as the delete.
        """

    @abc.abstractmethod
    async def count_by_activity(self, owner_id: str) -> ScheduleStats:
        """Return total/active/inactive counts for the owner."""

    @abc.abstractmethod
    async def find_duplicate_ids(self, owner_id: str, *, not_before: datetime) -> list[uuid.UUID]:
        """Return ids of future instances repeating an earlier instance's time window.

        For each ``(start_at, end_at)`` pair with ``start_at >= not_before``
        the earliest-created instance is kept and the others are returned.
        """
