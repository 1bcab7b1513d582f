"""Tests for timetable.schedule.query (listing, pagination, ListingState)."""

from __future__ import annotations

from datetime import timedelta

import pytest

from tests.factories import NOW, make_instance
from timetable.config import QueryConfig
from timetable.schedule.models import ActiveFilter, PagedResult, TimeFilter
from timetable.schedule.query import ListingState, ScheduleQueryEngine

pytestmark = pytest.mark.unit


@pytest.fixture
def engine(schedule_store, clock) -> ScheduleQueryEngine:
    return ScheduleQueryEngine(
        schedule_store, config=QueryConfig(default_page_size=2, max_page_size=5), clock=clock
    )


@pytest.fixture
async def seeded(schedule_store):
    offsets = [-72, -24, -1, 1, 24, 48, 96]
    return await schedule_store.insert_batch(
        [
            make_instance(NOW + timedelta(hours=h), title=f"Lesson {h}", location="Room A")
            for h in offsets
        ]
        + [make_instance(NOW + timedelta(hours=3), owner_id="group-2")]
    )


# ---------------------------------------------------------------------------
# Time partitions
# ---------------------------------------------------------------------------


class TestPartitions:
    async def test_current_is_ascending_from_now(self, engine, seeded):
        result = await engine.list_instances("group-1", TimeFilter.CURRENT, page_size=5)
        starts = [i.start_at for i in result.items]
        assert starts == sorted(starts)
        assert all(s >= NOW for s in starts)
        assert result.total == 4

    async def test_past_is_descending_before_now(self, engine, seeded):
        result = await engine.list_instances("group-1", TimeFilter.PAST, page_size=5)
        starts = [i.start_at for i in result.items]
        assert starts == sorted(starts, reverse=True)
        assert all(s < NOW for s in starts)
        assert result.total == 3

    async def test_owner_scope(self, engine, seeded):
        result = await engine.list_instances("group-2", TimeFilter.CURRENT)
        assert result.total == 1
        assert {i.owner_id for i in result.items} == {"group-2"}

    async def test_partition_moves_with_the_clock(self, engine, seeded, clock):
        clock.advance(hours=2)
        past = await engine.list_instances("group-1", TimeFilter.PAST, page_size=5)
        assert past.total == 4


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class TestPagination:
    async def test_pages_cover_the_partition(self, engine, seeded):
        first = await engine.list_instances("group-1", TimeFilter.CURRENT, page=1)
        second = await engine.list_instances("group-1", TimeFilter.CURRENT, page=2)
        assert (first.total_pages, first.has_more) == (2, True)
        assert (second.total_pages, second.has_more) == (2, False)
        assert len(first.items) + len(second.items) == 4
        assert first.items[-1].start_at < second.items[0].start_at

    async def test_page_past_the_end_is_empty(self, engine, seeded):
        result = await engine.list_instances("group-1", TimeFilter.PAST, page=9)
        assert result.items == []
        assert result.total == 3
        assert result.has_more is False

    async def test_empty_listing(self, engine):
        result = await engine.list_instances("nobody", TimeFilter.CURRENT)
        assert (result.total, result.total_pages, result.has_more) == (0, 0, False)

    @pytest.mark.parametrize(("page", "page_size"), [(0, 2), (1, 0), (1, 6)])
    async def test_invalid_paging_rejected(self, engine, page, page_size):
        with pytest.raises(ValueError):
            await engine.list_instances("group-1", TimeFilter.CURRENT, page, page_size)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class TestFilters:
    async def test_active_filter(self, engine, seeded, schedule_store):
        future = [i for i in seeded if i.owner_id == "group-1" and i.start_at >= NOW]
        await schedule_store.update_active_flag("group-1", [future[0].id], False)

        inactive = await engine.list_instances(
            "group-1", TimeFilter.CURRENT, page_size=5, active_filter=ActiveFilter.INACTIVE
        )
        active = await engine.list_instances(
            "group-1", TimeFilter.CURRENT, page_size=5, active_filter=ActiveFilter.ACTIVE
        )
        assert [i.id for i in inactive.items] == [future[0].id]
        assert active.total == 3

    async def test_search_is_case_insensitive(self, engine, seeded):
        result = await engine.list_instances(
            "group-1", TimeFilter.CURRENT, page_size=5, search="  lesson 24 "
        )
        assert [i.title for i in result.items] == ["Lesson 24"]

    async def test_search_matches_location(self, engine, seeded):
        result = await engine.list_instances("group-1", TimeFilter.PAST, search="room a")
        assert result.total == 3

    async def test_surface_active_includes_started_active_instances(self, engine, seeded):
        result = await engine.list_instances(
            "group-1", TimeFilter.CURRENT, page_size=5, surface_active=True
        )
        assert result.total == 7
        assert result.items[0].start_at < NOW


# ---------------------------------------------------------------------------
# ListingState
# ---------------------------------------------------------------------------


class TestListingState:
    def test_switching_time_filter_resets_page(self):
        state = ListingState("group-1", page=3).with_time_filter(TimeFilter.PAST)
        assert (state.time_filter, state.page) == (TimeFilter.PAST, 1)

    def test_next_page(self):
        state = ListingState("group-1", page_size=2)
        more = PagedResult(items=[], total=5, page=1, page_size=2)
        last = PagedResult(items=[], total=5, page=3, page_size=2)
        assert state.next_page(more).page == 2
        assert state.with_page(3).next_page(last) is None

    async def test_list_for_uses_state(self, engine, seeded):
        state = ListingState("group-1", TimeFilter.PAST, page=2, page_size=2)
        result = await engine.list_for(state)
        assert (result.page, len(result.items)) == (2, 1)

    async def test_stats(self, engine, seeded, schedule_store):
        ids = [i.id for i in seeded if i.owner_id == "group-1"][:2]
        await schedule_store.update_active_flag("group-1", ids, False)
        stats = await engine.stats("group-1")
        assert (stats.total, stats.active, stats.inactive) == (7, 5, 2)
