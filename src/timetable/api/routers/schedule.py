"""Owner-scoped schedule endpoints.

Provides ``router`` at ``/api/owners/{owner_id}/schedule``:

- ``POST /preview``      closed-form estimate, nothing written
- ``POST /generate``     validate + materialize + persist (201)
- ``PATCH /bulk``        activate / deactivate / delete_future
- ``POST /deduplicate``  remove future duplicates left by re-generation
- ``GET /events``        time-partitioned, paginated listing
- ``GET /stats``         active / inactive counts
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from timetable.api.deps import get_schedule_service
from timetable.api.models import ApiResponse, GenerateScheduleBody, PaginatedResponse
from timetable.schedule.models import (
    ActiveFilter,
    BulkLifecycleRequest,
    BulkLifecycleResult,
    EventInstance,
    GenerationEstimate,
    GenerationResult,
    ScheduleStats,
    TimeFilter,
)
from timetable.schedule.service import ScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/owners/{owner_id}/schedule", tags=["schedule"])


@router.post("/preview", response_model=ApiResponse[GenerationEstimate])
async def preview_schedule(
    owner_id: str,
    body: GenerateScheduleBody,
    service: ScheduleService = Depends(get_schedule_service),
) -> ApiResponse[GenerationEstimate]:
    estimate = service.preview(body.to_request(owner_id))
    return ApiResponse[GenerationEstimate](data=estimate)


@router.post("/generate", response_model=ApiResponse[GenerationResult], status_code=201)
async def generate_schedule(
    owner_id: str,
    body: GenerateScheduleBody,
    service: ScheduleService = Depends(get_schedule_service),
) -> ApiResponse[GenerationResult]:
    result = await service.generate(body.to_request(owner_id))
    return ApiResponse[GenerationResult](data=result)


@router.patch("/bulk", response_model=ApiResponse[BulkLifecycleResult])
async def bulk_lifecycle(
    owner_id: str,
    body: BulkLifecycleRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> ApiResponse[BulkLifecycleResult]:
    result = await service.bulk(owner_id, body)
    return ApiResponse[BulkLifecycleResult](data=result)


@router.post("/deduplicate", response_model=ApiResponse[BulkLifecycleResult])
async def deduplicate_schedule(
    owner_id: str,
    service: ScheduleService = Depends(get_schedule_service),
) -> ApiResponse[BulkLifecycleResult]:
    result = await service.deduplicate(owner_id)
    return ApiResponse[BulkLifecycleResult](data=result)


@router.get("/events", response_model=PaginatedResponse[EventInstance])
async def list_events(
    owner_id: str,
    time_filter: TimeFilter = Query(TimeFilter.CURRENT),
    page: int = Query(1, ge=1),
    page_size: int | None = Query(None, ge=1),
    active: ActiveFilter = Query(ActiveFilter.ALL),
    search: str | None = Query(None, max_length=200),
    surface_active: bool = Query(False),
    service: ScheduleService = Depends(get_schedule_service),
) -> PaginatedResponse[EventInstance]:
    result = await service.list_instances(
        owner_id,
        time_filter,
        page,
        page_size,
        active_filter=active,
        search=search,
        surface_active=surface_active,
    )
    return PaginatedResponse[EventInstance].from_page(result)


@router.get("/stats", response_model=ApiResponse[ScheduleStats])
async def schedule_stats(
    owner_id: str,
    service: ScheduleService = Depends(get_schedule_service),
) -> ApiResponse[ScheduleStats]:
    return ApiResponse[ScheduleStats](data=await service.stats(owner_id))
