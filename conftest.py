"""Root conftest: shared PostgreSQL fixtures for DB-backed tests.

The container is started once per session; every ``provisioned_postgres_pool``
usage gets a freshly created database with the schema migrated to head.
"""

from __future__ import annotations

import logging
import shutil
import time
import uuid
import warnings
from collections.abc import AsyncIterator, Callable, Iterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from asyncpg.pool import Pool
    from testcontainers.postgres import PostgresContainer

docker_available = shutil.which("docker") is not None
logger = logging.getLogger(__name__)

_TRANSIENT_DOCKER_TEARDOWN_ERROR_MARKERS = (
    "did not receive an exit event",
    "tried to kill container",
    "no such container",
    "removal of container",
    "is already in progress",
    "is dead or marked for removal",
)


def _is_transient_docker_teardown_error(exc: Exception) -> bool:
    message = str(exc).lower()
    explanation = str(getattr(exc, "explanation", "") or "").lower()
    return any(
        marker in message or marker in explanation
        for marker in _TRANSIENT_DOCKER_TEARDOWN_ERROR_MARKERS
    )


def _stop_container_with_retry(container: PostgresContainer, max_attempts: int = 4) -> None:
    for attempt in range(1, max_attempts + 1):
        try:
            container.stop()
            return
        except Exception as exc:
            if not _is_transient_docker_teardown_error(exc):
                raise
            if attempt < max_attempts:
                time.sleep(0.1 * (2 ** (attempt - 1)))
                continue
            warnings.warn(
                f"Ignoring transient Docker teardown error after retries: {exc}",
                RuntimeWarning,
                stacklevel=2,
            )


def _unique_test_db_name() -> str:
    return f"test_{uuid.uuid4().hex[:12]}"


@pytest.fixture(scope="session")
def postgres_container() -> Iterator[PostgresContainer]:
    """Shared Postgres testcontainer for all DB-backed tests in this session."""
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer("postgres:16")
    container.start()
    try:
        yield container
    finally:
        _stop_container_with_retry(container)


@pytest.fixture
def provisioned_postgres_pool(
    postgres_container: PostgresContainer,
) -> Callable[..., AbstractAsyncContextManager[Pool]]:
    """Create a fresh, migrated database and asyncpg pool for a single test usage.

    Tests should use this as:
        async with provisioned_postgres_pool() as pool:
            ...
    """
    from timetable.config import DatabaseConfig
    from timetable.db import ConnectionParams, Database
    from timetable.migrations import run_migrations

    @asynccontextmanager
    async def _provision(
        *,
        min_pool_size: int = 1,
        max_pool_size: int = 3,
    ) -> AsyncIterator[Pool]:
        db = Database(
            DatabaseConfig(
                name=_unique_test_db_name(),
                min_pool_size=min_pool_size,
                max_pool_size=max_pool_size,
            ),
            ConnectionParams(
                host=postgres_container.get_container_host_ip(),
                port=int(postgres_container.get_exposed_port(5432)),
                user=postgres_container.username,
                password=postgres_container.password,
            ),
        )
        await db.provision()
        await run_migrations(db.dsn())
        pool = await db.connect()
        try:
            yield pool
        finally:
            await db.close()

    return _provision
