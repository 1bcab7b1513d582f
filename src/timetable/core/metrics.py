"""OpenTelemetry metrics instruments for the schedule engine and status sync.

Instruments are created lazily from the global MeterProvider, so callers do
not need to pass a Meter instance around.

Initialization
--------------
Call ``init_metrics(service_name)`` once during process startup. When
OTEL_EXPORTER_OTLP_ENDPOINT is not set, the global no-op MeterProvider is
used and all recordings are silent no-ops.

Instruments
-----------
Schedule engine:

  timetable.schedule.materialized_total   Counter
      Event instances persisted by generation requests.

  timetable.schedule.lifecycle_total      Counter  (labels: action, outcome=affected|skipped)
      Instances touched (or deliberately skipped) by bulk lifecycle calls.

Status sync:

  timetable.sync.retries_total            Counter  (label: field_key)
  timetable.sync.rollbacks_total          Counter  (label: field_key)
  timetable.sync.failures_total           Counter  (label: field_key)
"""

from __future__ import annotations

import logging
import os

from opentelemetry import metrics

logger = logging.getLogger(__name__)

_METER_NAME = "timetable"


def init_metrics(service_name: str) -> metrics.Meter:
    """Initialize OpenTelemetry metrics for the process.

    When OTEL_EXPORTER_OTLP_ENDPOINT is set, configures a real MeterProvider
    with a periodic OTLP gRPC exporter.  Otherwise the global no-op provider
    is kept.
    """
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")

    if not endpoint:
        logger.info("OTEL_EXPORTER_OTLP_ENDPOINT not set, using no-op meter")
        return metrics.get_meter(_METER_NAME)

    # Import SDK/exporter only when needed to avoid hard dependency at import time
    from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
    from opentelemetry.sdk.metrics import MeterProvider
    from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
    from opentelemetry.sdk.resources import Resource

    resource = Resource.create({"service.name": service_name})
    exporter = OTLPMetricExporter(endpoint=endpoint)
    reader = PeriodicExportingMetricReader(exporter, export_interval_millis=15_000)
    provider = MeterProvider(resource=resource, metric_readers=[reader])

    metrics.set_meter_provider(provider)
    logger.info("Metrics initialized: service=%s, endpoint=%s", service_name, endpoint)

    return metrics.get_meter(_METER_NAME)


def get_meter() -> metrics.Meter:
    """Return a Meter from the current global provider (no-op before init)."""
    return metrics.get_meter(_METER_NAME)


class TimetableMetrics:
    """Per-process recording helpers with lazily created instruments.

    Usage::

        _metrics = TimetableMetrics()
        _metrics.record_materialized(12)
        _metrics.record_lifecycle("delete_future", affected=2, skipped=1)
    """

    def __init__(self) -> None:
        self.__materialized: metrics.Counter | None = None
        self.__lifecycle: metrics.Counter | None = None
        self.__retries: metrics.Counter | None = None
        self.__rollbacks: metrics.Counter | None = None
        self.__failures: metrics.Counter | None = None

    # -- instrument accessors (lazy init) ------------------------------------

    @property
    def _materialized(self) -> metrics.Counter:
        if self.__materialized is None:
            self.__materialized = get_meter().create_counter(
                name="timetable.schedule.materialized_total",
                description="Event instances persisted by schedule generation",
                unit="instances",
            )
        return self.__materialized

    @property
    def _lifecycle(self) -> metrics.Counter:
        if self.__lifecycle is None:
            self.__lifecycle = get_meter().create_counter(
                name="timetable.schedule.lifecycle_total",
                description="Instances affected or skipped by bulk lifecycle operations",
                unit="instances",
            )
        return self.__lifecycle

    @property
    def _retries(self) -> metrics.Counter:
        if self.__retries is None:
            self.__retries = get_meter().create_counter(
                name="timetable.sync.retries_total",
                description="Status write retries scheduled after a failed attempt",
                unit="retries",
            )
        return self.__retries

    @property
    def _rollbacks(self) -> metrics.Counter:
        if self.__rollbacks is None:
            self.__rollbacks = get_meter().create_counter(
                name="timetable.sync.rollbacks_total",
                description="Optimistic status values rolled back after a failed write",
                unit="rollbacks",
            )
        return self.__rollbacks

    @property
    def _failures(self) -> metrics.Counter:
        if self.__failures is None:
            self.__failures = get_meter().create_counter(
                name="timetable.sync.failures_total",
                description="Status mutations that exhausted their retry budget",
                unit="mutations",
            )
        return self.__failures

    # -- recording helpers ---------------------------------------------------

    def record_materialized(self, count: int) -> None:
        self._materialized.add(count)

    def record_lifecycle(self, action: str, *, affected: int, skipped: int = 0) -> None:
        self._lifecycle.add(affected, {"action": action, "outcome": "affected"})
        if skipped:
            self._lifecycle.add(skipped, {"action": action, "outcome": "skipped"})

    def record_retry(self, field_key: str) -> None:
        self._retries.add(1, {"field_key": field_key})

    def record_rollback(self, field_key: str) -> None:
        self._rollbacks.add(1, {"field_key": field_key})

    def record_failure(self, field_key: str) -> None:
        self._failures.add(1, {"field_key": field_key})
