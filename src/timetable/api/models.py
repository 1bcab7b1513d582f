"""Request/response envelopes for the timetable HTTP API.

Successful responses follow ``{"data": T, "meta": {...}}``; errors follow
``{"error": {"code": "...", "message": "...", "details": {...}}}``.
"""

from __future__ import annotations

from datetime import date
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, Field

from timetable.schedule.models import (
    EventCategory,
    PagedResult,
    RecurrenceTemplate,
    ScheduleGenerationRequest,
)

# ---------------------------------------------------------------------------
# Base response wrappers
# ---------------------------------------------------------------------------

T = TypeVar("T")


class ApiMeta(BaseModel):
    """Extensible metadata bag attached to every API response."""

    model_config = {"extra": "allow"}


class ApiResponse(BaseModel, Generic[T]):
    data: T
    meta: ApiMeta = Field(default_factory=ApiMeta)


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


class PaginationMeta(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int
    has_more: bool


class PaginatedResponse(BaseModel, Generic[T]):
    """``{"data": [T, ...], "meta": PaginationMeta}``"""

    data: list[T]
    meta: PaginationMeta

    @classmethod
    def from_page(cls, result: PagedResult) -> PaginatedResponse:
        return cls(
            data=result.items,
            meta=PaginationMeta(
                total=result.total,
                page=result.page,
                page_size=result.page_size,
                total_pages=result.total_pages,
                has_more=result.has_more,
            ),
        )


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class GenerateScheduleBody(BaseModel):
    """Generation request body; the owner comes from the URL path."""

    request_id: UUID | None = None
    valid_from: date | None = None
    valid_to: date | None = None
    templates: list[RecurrenceTemplate] = Field(default_factory=list)
    title: str | None = None
    location: str | None = None
    category: EventCategory = EventCategory.LESSON
    attendance_required: bool = False

    def to_request(self, owner_id: str) -> ScheduleGenerationRequest:
        data = self.model_dump()
        if data["request_id"] is None:
            del data["request_id"]
        return ScheduleGenerationRequest(owner_id=owner_id, **data)


class StatusUpdate(BaseModel):
    value: str
