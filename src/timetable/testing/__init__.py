"""Test support utilities for the timetable package.

The in-memory stores honour the same atomicity contract as the PostgreSQL
adapters and have no dependency on pytest, so they can back demos as well.
"""

from __future__ import annotations

from timetable.testing.memory import FakeClock, InMemoryScheduleStore, InMemoryStatusStore

__all__ = ["FakeClock", "InMemoryScheduleStore", "InMemoryStatusStore"]
