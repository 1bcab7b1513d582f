"""API error handling: domain exceptions to the standard error envelope.

Status code mapping:
- ``ScheduleValidationError`` -> 422 (every issue in ``details.issues``)
- ``ScopeError`` -> 403 (offending ids in ``details.ids``)
- ``StatusRejectedError`` -> 400
- ``StoreError`` -> 503
- ``ValueError`` -> 400
- Any other ``Exception`` -> 500
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from timetable.api.models import ErrorDetail, ErrorResponse
from timetable.errors import (
    ScheduleValidationError,
    ScopeError,
    StatusRejectedError,
    StoreError,
)

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, message: str, details: dict | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, details=details))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def _handle_schedule_validation(
    request: Request,
    exc: ScheduleValidationError,
) -> JSONResponse:
    logger.info("Rejected schedule request: %s", exc)
    return _error(
        422,
        "SCHEDULE_INVALID",
        "Schedule request is invalid",
        {"issues": [issue.model_dump() for issue in exc.issues]},
    )


async def _handle_scope_error(request: Request, exc: ScopeError) -> JSONResponse:
    logger.warning("Scope violation on %s %s: %s", request.method, request.url.path, exc)
    return _error(
        403,
        "OUT_OF_SCOPE",
        str(exc),
        {"owner_id": exc.owner_id, "ids": [str(i) for i in exc.ids]},
    )


async def _handle_status_rejected(request: Request, exc: StatusRejectedError) -> JSONResponse:
    logger.info("Status value rejected: %s", exc)
    return _error(
        400,
        "STATUS_REJECTED",
        str(exc),
        {"field_key": exc.field_key, "reason": exc.reason},
    )


async def _handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return _error(503, "STORE_UNAVAILABLE", "Storage is temporarily unavailable")


async def _handle_value_error(request: Request, exc: ValueError) -> JSONResponse:
    logger.info("Validation error: %s", exc)
    return _error(400, "VALIDATION_ERROR", str(exc))


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """Converts any unhandled exception into a 500 error envelope."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            return _error(500, "INTERNAL_ERROR", "Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application."""
    app.add_exception_handler(ScheduleValidationError, _handle_schedule_validation)  # type: ignore[arg-type]
    app.add_exception_handler(ScopeError, _handle_scope_error)  # type: ignore[arg-type]
    app.add_exception_handler(StatusRejectedError, _handle_status_rejected)  # type: ignore[arg-type]
    app.add_exception_handler(StoreError, _handle_store_error)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, _handle_value_error)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
