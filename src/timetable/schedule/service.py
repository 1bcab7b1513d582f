"""Caller-facing entry points of the schedule engine.

``ScheduleService`` wires validation, materialization, lifecycle and query
over one ScheduleStore. It is the only object the HTTP layer and the CLI talk
to. Generation never partially succeeds: either validation fails and nothing
is written, or the full batch is inserted atomically.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from opentelemetry import trace

from timetable.config import QueryConfig, RecurrenceRules
from timetable.core.logging import owner_context
from timetable.core.metrics import TimetableMetrics
from timetable.schedule import materializer
from timetable.schedule.lifecycle import LifecycleManager
from timetable.schedule.models import (
    ActiveFilter,
    BulkLifecycleRequest,
    BulkLifecycleResult,
    GenerationEstimate,
    GenerationResult,
    PagedResult,
    ScheduleGenerationRequest,
    ScheduleStats,
    TimeFilter,
)
from timetable.schedule.query import ScheduleQueryEngine
from timetable.schedule.store import ScheduleStore
from timetable.schedule.validator import validate_request

logger = logging.getLogger(__name__)


class ScheduleService:
    """Generation, lifecycle and listing for owner-scoped schedules."""

    def __init__(
        self,
        store: ScheduleStore,
        *,
        rules: RecurrenceRules | None = None,
        query_config: QueryConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
        metrics: TimetableMetrics | None = None,
    ) -> None:
        self._store = store
        self._rules = rules or RecurrenceRules()
        self._clock = clock
        self._metrics = metrics or TimetableMetrics()
        self.lifecycle = LifecycleManager(store, clock=clock, metrics=self._metrics)
        self.query = ScheduleQueryEngine(store, config=query_config, clock=clock)

    @property
    def rules(self) -> RecurrenceRules:
        return self._rules

    def preview(self, request: ScheduleGenerationRequest) -> GenerationEstimate:
        """Validate *request* and return the closed-form estimate without writing."""
        validated = validate_request(request, today=self._clock().date(), rules=self._rules)
        return materializer.estimate(validated)

    async def generate(self, request: ScheduleGenerationRequest) -> GenerationResult:
        """Validate, materialize and persist a generation request.

        Raises:
            ScheduleValidationError: with every violated rule; nothing is written.
            StoreError: the batch insert failed; nothing is written.
        """
        with owner_context(request.owner_id):
            tracer = trace.get_tracer("timetable")
            with tracer.start_as_current_span("timetable.schedule.generate") as span:
                span.set_attribute("owner_id", request.owner_id)
                span.set_attribute("templates", len(request.templates))
                validated = validate_request(
                    request, today=self._clock().date(), rules=self._rules
                )
                drafts = materializer.materialize(
                    validated, default_title=self._rules.default_title
                )
                span.set_attribute("instances", len(drafts))
                if not drafts:
                    logger.info(
                        "Generation request %s produced no instances", request.request_id
                    )
                    return GenerationResult(created_count=0, instances=[])

                created = await self._store.insert_batch(drafts)

            self._metrics.record_materialized(len(created))
            logger.info(
                "Generated %d instance(s) for owner=%s from %s to %s (request=%s)",
                len(created),
                request.owner_id,
                validated.valid_from,
                validated.valid_to,
                request.request_id,
            )
            return GenerationResult(created_count=len(created), instances=created)

    async def bulk(self, owner_id: str, request: BulkLifecycleRequest) -> BulkLifecycleResult:
        """Apply an activate / deactivate / delete_future request to owned ids."""
        with owner_context(owner_id):
            return await self.lifecycle.apply(owner_id, request)

    async def deduplicate(self, owner_id: str) -> BulkLifecycleResult:
        """Remove future instances that repeat an earlier instance's time window.

        Re-generation over an overlapping range is additive; this is the
        explicit operation that cleans up afterwards. Past duplicates are
        never touched.
        """
        with owner_context(owner_id):
            duplicate_ids = await self._store.find_duplicate_ids(
                owner_id, not_before=self._clock()
            )
            if not duplicate_ids:
                logger.info("No duplicate instances for owner=%s", owner_id)
            return await self.lifecycle.delete_future(owner_id, duplicate_ids)

    async def list_instances(
        self,
        owner_id: str,
        time_filter: TimeFilter = TimeFilter.CURRENT,
        page: int = 1,
        page_size: int | None = None,
        *,
        active_filter: ActiveFilter = ActiveFilter.ALL,
        search: str | None = None,
        surface_active: bool = False,
    ) -> PagedResult:
        return await self.query.list_instances(
            owner_id,
            time_filter,
            page,
            page_size,
            active_filter=active_filter,
            search=search,
            surface_active=surface_active,
        )

    async def stats(self, owner_id: str) -> ScheduleStats:
        return await self.query.stats(owner_id)
