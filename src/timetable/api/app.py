"""Timetable API: FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Lifespan handler that opens the PostgreSQL pool and wires dependencies,
  unless dependencies were already wired (tests, embedding)
- Health endpoint at GET /api/health
- Schedule and status routers
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from timetable.api.deps import (
    get_schedule_service,
    init_resources,
    shutdown_resources,
    wire_dependencies,
)
from timetable.api.middleware import register_error_handlers
from timetable.api.routers.schedule import router as schedule_router
from timetable.api.routers.status import router as status_router
from timetable.config import TimetableConfig

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool on startup and close it on shutdown."""
    if get_schedule_service in app.dependency_overrides:
        yield
        return

    config: TimetableConfig = app.state.config
    resources = await init_resources(config)
    wire_dependencies(app, resources.service, resources.status_store)
    try:
        yield
    finally:
        await shutdown_resources(resources)
        logger.info("API resources released")


def create_app(
    config: TimetableConfig | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Parsed configuration; defaults are used when omitted.
    cors_origins:
        Allowed CORS origins. Defaults to ["http://localhost:5173"].
    """
    if cors_origins is None:
        cors_origins = ["http://localhost:5173"]

    app = FastAPI(
        title="Timetable API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config or TimetableConfig()
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(schedule_router)
    app.include_router(status_router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app
