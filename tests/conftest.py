"""Shared fixtures for the timetable test suite.

Unit tests run against the in-memory stores with a frozen clock (see
``tests.factories.NOW``).
"""

from __future__ import annotations

import pytest

from tests.factories import NOW
from timetable.schedule.service import ScheduleService
from timetable.testing import FakeClock, InMemoryScheduleStore, InMemoryStatusStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def schedule_store(clock: FakeClock) -> InMemoryScheduleStore:
    return InMemoryScheduleStore(clock=clock)


@pytest.fixture
def status_store() -> InMemoryStatusStore:
    return InMemoryStatusStore()


@pytest.fixture
def service(schedule_store: InMemoryScheduleStore, clock: FakeClock) -> ScheduleService:
    return ScheduleService(schedule_store, clock=clock)
