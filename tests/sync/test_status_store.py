"""Tests for the status field contract and LocalStatusView."""

from __future__ import annotations

import logging

import pytest

from timetable.errors import StatusRejectedError, StoreError
from timetable.sync.store import STATUS_FIELDS, LocalStatusView, canonicalize_status

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# canonicalize_status
# ---------------------------------------------------------------------------


class TestCanonicalize:
    @pytest.mark.parametrize(
        ("field_key", "raw", "expected"),
        [
            ("attendance", "attending", "ATTENDING"),
            ("attendance", "  Not_Attending ", "NOT_ATTENDING"),
            ("checklist_progress", "has_questions", "HAS_QUESTIONS"),
            ("task_progress", "IN_PROGRESS", "IN_PROGRESS"),
        ],
    )
    def test_canonical_spelling(self, field_key, raw, expected):
        assert canonicalize_status(field_key, raw) == expected

    def test_value_outside_enum_rejected(self):
        with pytest.raises(StatusRejectedError) as exc_info:
            canonicalize_status("task_progress", "ATTENDING")
        assert exc_info.value.field_key == "task_progress"
        assert "DONE" in exc_info.value.reason

    def test_unknown_field_rejected(self):
        with pytest.raises(StatusRejectedError, match="unknown status field"):
            canonicalize_status("mood", "HAPPY")

    def test_non_string_rejected(self):
        with pytest.raises(StatusRejectedError):
            canonicalize_status("attendance", 1)

    def test_rejection_is_a_store_error(self):
        assert issubclass(StatusRejectedError, StoreError)

    def test_every_field_has_values(self):
        assert all(STATUS_FIELDS.values())


# ---------------------------------------------------------------------------
# LocalStatusView
# ---------------------------------------------------------------------------


class TestLocalStatusView:
    def test_get_set_and_clear(self):
        view = LocalStatusView({("e", "attendance"): "PENDING"})
        assert view.get("e", "attendance") == "PENDING"
        view.set("e", "attendance", "ATTENDED")
        assert view.snapshot() == {("e", "attendance"): "ATTENDED"}
        view.set("e", "attendance", None)
        assert view.get("e", "attendance") is None
        assert view.snapshot() == {}

    def test_listeners_and_unsubscribe(self):
        view = LocalStatusView()
        calls = []
        unsubscribe = view.subscribe(lambda *args: calls.append(args))

        view.set("e", "attendance", "MAYBE")
        unsubscribe()
        unsubscribe()
        view.set("e", "attendance", "ABSENT")

        assert calls == [("e", "attendance", "MAYBE")]

    def test_failing_listener_does_not_block_others(self, caplog):
        view = LocalStatusView()
        calls = []

        def broken(*args):
            raise RuntimeError("render failed")

        view.subscribe(broken)
        view.subscribe(lambda *args: calls.append(args))

        with caplog.at_level(logging.ERROR, logger="timetable.sync.store"):
            view.set("e", "attendance", "MAYBE")

        assert view.get("e", "attendance") == "MAYBE"
        assert len(calls) == 1
        assert "Status listener failed" in caplog.text

    def test_snapshot_is_a_copy(self):
        view = LocalStatusView()
        snapshot = view.snapshot()
        snapshot[("e", "attendance")] = "DONE"
        assert view.get("e", "attendance") is None


# ---------------------------------------------------------------------------
# InMemoryStatusStore
# ---------------------------------------------------------------------------


class TestInMemoryStatusStore:
    async def test_write_then_read(self, status_store):
        assert await status_store.read_status("e", "attendance") is None
        assert await status_store.write_status("e", "attendance", "absent") == "ABSENT"
        assert await status_store.read_status("e", "attendance") == "ABSENT"

    async def test_scripted_failures_are_consumed_in_order(self, status_store):
        first, second = StoreError("one"), StoreError("two")
        status_store.fail_next(first, second)

        with pytest.raises(StoreError) as one:
            await status_store.write_status("e", "attendance", "absent")
        with pytest.raises(StoreError) as two:
            await status_store.write_status("e", "attendance", "absent")

        assert (one.value, two.value) == (first, second)
        assert await status_store.write_status("e", "attendance", "absent") == "ABSENT"
        assert len(status_store.writes) == 3
