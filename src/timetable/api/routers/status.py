"""Status field endpoints: the server of record for attendance and progress.

Values are canonicalized (trimmed, upper-cased) and must belong to the
field's enum; anything else is answered with 400 ``STATUS_REJECTED``.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from timetable.api.deps import get_status_store
from timetable.api.models import ApiResponse, StatusUpdate
from timetable.errors import StatusRejectedError
from timetable.sync.store import STATUS_FIELDS, StatusField, StatusStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/status", tags=["status"])


def _require_known_field(field_key: str) -> None:
    if field_key not in STATUS_FIELDS:
        raise StatusRejectedError(field_key, None, "unknown status field")


@router.get("/{entity_id}/{field_key}", response_model=ApiResponse[StatusField])
async def read_status(
    entity_id: str,
    field_key: str,
    store: StatusStore = Depends(get_status_store),
) -> ApiResponse[StatusField]:
    _require_known_field(field_key)
    value = await store.read_status(entity_id, field_key)
    if value is None:
        raise HTTPException(status_code=404, detail=f"No {field_key} status for {entity_id}")
    return ApiResponse[StatusField](
        data=StatusField(entity_id=entity_id, field_key=field_key, value=value)
    )


@router.put("/{entity_id}/{field_key}", response_model=ApiResponse[StatusField])
async def write_status(
    entity_id: str,
    field_key: str,
    body: StatusUpdate,
    store: StatusStore = Depends(get_status_store),
) -> ApiResponse[StatusField]:
    _require_known_field(field_key)
    canonical = await store.write_status(entity_id, field_key, body.value)
    logger.info("Status %s/%s = %s", entity_id, field_key, canonical)
    return ApiResponse[StatusField](
        data=StatusField(entity_id=entity_id, field_key=field_key, value=canonical)
    )
