"""Time-partitioned, page-based listing of event instances.

``current`` lists instances starting now or later, soonest first. ``past``
lists instances that already started, most recent first. The partition is
computed at query time; nothing is stored about an instance being past.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

from timetable.config import QueryConfig
from timetable.schedule.models import (
    ActiveFilter,
    InstanceQuery,
    PagedResult,
    ScheduleStats,
    TimeFilter,
)
from timetable.schedule.store import ScheduleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListingState:
    """A caller's position in a listing.

    Changing the time filter always returns to the first page.
    """

    owner_id: str
    time_filter: TimeFilter = TimeFilter.CURRENT
    page: int = 1
    page_size: int = 20

    def with_time_filter(self, time_filter: TimeFilter) -> ListingState:
        return replace(self, time_filter=time_filter, page=1)

    def with_page(self, page: int) -> ListingState:
        if page < 1:
            raise ValueError("page must be >= 1")
        return replace(self, page=page)

    def next_page(self, result: PagedResult) -> ListingState | None:
        """Return the state for the following page, or None on the last page."""
        if not result.has_more:
            return None
        return replace(self, page=self.page + 1)


class ScheduleQueryEngine:
    """Read-only listing and statistics over a ScheduleStore."""

    def __init__(
        self,
        store: ScheduleStore,
        *,
        config: QueryConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._config = config or QueryConfig()
        self._clock = clock

    @property
    def default_page_size(self) -> int:
        return self._config.default_page_size

    def _check_paging(self, page: int, page_size: int) -> None:
        if page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= page_size <= self._config.max_page_size:
            raise ValueError(f"page_size must be between 1 and {self._config.max_page_size}")

    async def list_instances(
        self,
        owner_id: str,
        time_filter: TimeFilter,
        page: int = 1,
        page_size: int | None = None,
        *,
        active_filter: ActiveFilter = ActiveFilter.ALL,
        search: str | None = None,
        surface_active: bool = False,
    ) -> PagedResult:
        """Return one page of the owner's instances in the given time partition.

        When *surface_active* is set, the ``current`` partition also includes
        active instances that already started.
        """
        size = page_size if page_size is not None else self._config.default_page_size
        self._check_paging(page, size)

        normalized_search = search.strip() if search else None
        query = InstanceQuery(
            owner_id=owner_id,
            time_filter=time_filter,
            now=self._clock(),
            offset=(page - 1) * size,
            limit=size,
            active_filter=active_filter,
            search=normalized_search or None,
            surface_active=surface_active,
        )
        items, total = await self._store.list_instances(query)
        logger.debug(
            "Listed %d/%d %s instance(s) for owner=%s page=%d",
            len(items),
            total,
            time_filter,
            owner_id,
            page,
        )
        return PagedResult(items=items, total=total, page=page, page_size=size)

    async def list_for(self, state: ListingState, **filters) -> PagedResult:
        return await self.list_instances(
            state.owner_id, state.time_filter, state.page, state.page_size, **filters
        )

    async def stats(self, owner_id: str) -> ScheduleStats:
        return await self._store.count_by_activity(owner_id)
