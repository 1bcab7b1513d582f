"""Tests for tracing and metrics initialization."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from timetable.core import metrics as metrics_module
from timetable.core import telemetry
from timetable.core.metrics import TimetableMetrics, init_metrics

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _no_endpoint(monkeypatch):
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)


class TestInit:
    def test_tracing_stays_no_op_without_endpoint(self):
        tracer = telemetry.init_telemetry("timetable")
        assert tracer is not None
        assert telemetry._tracer_provider_installed is False

    def test_metrics_stay_no_op_without_endpoint(self):
        assert init_metrics("timetable") is not None


class TestTimetableMetrics:
    def test_instruments_created_once(self, monkeypatch):
        meter = MagicMock()
        monkeypatch.setattr(metrics_module, "get_meter", lambda: meter)
        recorder = TimetableMetrics()

        recorder.record_retry("attendance")
        recorder.record_retry("attendance")

        meter.create_counter.assert_called_once()
        assert meter.create_counter.return_value.add.call_count == 2

    def test_lifecycle_reports_skipped_separately(self, monkeypatch):
        meter = MagicMock()
        monkeypatch.setattr(metrics_module, "get_meter", lambda: meter)
        counter = meter.create_counter.return_value

        TimetableMetrics().record_lifecycle("delete_future", affected=2, skipped=1)

        assert [c.args for c in counter.add.call_args_list] == [
            (2, {"action": "delete_future", "outcome": "affected"}),
            (1, {"action": "delete_future", "outcome": "skipped"}),
        ]

    def test_no_op_meter_accepts_recordings(self):
        recorder = TimetableMetrics()
        recorder.record_materialized(3)
        recorder.record_rollback("attendance")
        recorder.record_failure("attendance")
