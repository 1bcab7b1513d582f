"""Dependency wiring for the timetable API.

Route handlers depend on the ``get_*`` stubs below. ``wire_dependencies``
overrides them with concrete objects, either from the lifespan handler
(PostgreSQL-backed) or directly from tests (in-memory).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import FastAPI

from timetable.config import TimetableConfig
from timetable.core.metrics import TimetableMetrics
from timetable.db import Database
from timetable.schedule.postgres import PostgresScheduleStore
from timetable.schedule.service import ScheduleService
from timetable.sync.postgres import PostgresStatusStore
from timetable.sync.store import StatusStore

logger = logging.getLogger(__name__)


def get_schedule_service() -> ScheduleService:
    """Dependency stub -- overridden at app startup or in tests."""
    raise RuntimeError("ScheduleService not initialized")


def get_status_store() -> StatusStore:
    """Dependency stub -- overridden at app startup or in tests."""
    raise RuntimeError("StatusStore not initialized")


def wire_dependencies(app: FastAPI, service: ScheduleService, status_store: StatusStore) -> None:
    app.dependency_overrides[get_schedule_service] = lambda: service
    app.dependency_overrides[get_status_store] = lambda: status_store


@dataclass
class Resources:
    """Process-wide objects owned by the lifespan handler."""

    db: Database
    service: ScheduleService
    status_store: StatusStore


async def init_resources(config: TimetableConfig) -> Resources:
    """Connect to PostgreSQL and build the stores and service on top of it."""
    db = Database(config.db)
    pool = await db.connect()
    service = ScheduleService(
        PostgresScheduleStore(pool),
        rules=config.rules,
        query_config=config.query,
        metrics=TimetableMetrics(),
    )
    logger.info("API resources initialized for database %s", config.db.name)
    return Resources(db=db, service=service, status_store=PostgresStatusStore(pool))


async def shutdown_resources(resources: Resources) -> None:
    await resources.db.close()
