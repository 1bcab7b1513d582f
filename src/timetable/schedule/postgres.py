"""PostgreSQL-backed ScheduleStore on an asyncpg pool.

Every write is a single SQL statement, so atomicity comes from PostgreSQL
itself: a batch insert is one ``INSERT ... SELECT FROM unnest(...)`` and the
future-only delete evaluates its ``start_at`` guard inside the ``DELETE``.
asyncpg failures are re-raised as ``StoreError``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import asyncpg

from timetable.errors import StoreError
from timetable.schedule.models import (
    ActiveFilter,
    EventInstance,
    InstanceQuery,
    ScheduleStats,
    TimeFilter,
)
from timetable.schedule.store import ScheduleStore

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, owner_id, start_at, end_at, is_active, attendance_required, "
    "title, location, category, generated_from, created_at"
)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        logger.error("Schedule store %s failed: %s", operation, exc)
        raise StoreError(f"{operation} failed: {exc}") from exc


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _row_to_instance(row: Any) -> EventInstance:
    return EventInstance.model_validate(dict(row))


def build_listing_filter(query: InstanceQuery) -> tuple[str, list[Any]]:
    """Return the WHERE clause and its bind arguments for a listing query."""
    args: list[Any] = [query.owner_id, query.now]
    clauses = ["owner_id = $1"]

    if query.time_filter is TimeFilter.PAST:
        clauses.append("start_at < $2")
    elif query.surface_active:
        clauses.append("(start_at >= $2 OR is_active)")
    else:
        clauses.append("start_at >= $2")

    if query.active_filter is ActiveFilter.ACTIVE:
        clauses.append("is_active")
    elif query.active_filter is ActiveFilter.INACTIVE:
        clauses.append("NOT is_active")

    if query.search:
        args.append(f"%{_escape_like(query.search)}%")
        n = len(args)
        clauses.append(f"(title ILIKE ${n} OR COALESCE(location, '') ILIKE ${n})")

    return " AND ".join(clauses), args


class PostgresScheduleStore(ScheduleStore):
    """ScheduleStore over the ``event_instances`` table."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def list_instances(self, query: InstanceQuery) -> tuple[list[EventInstance], int]:
        where, args = build_listing_filter(query)
        direction = "DESC" if query.time_filter is TimeFilter.PAST else "ASC"
        n = len(args)
        with _store_errors("list_instances"):
            async with self._pool.acquire() as conn:
                # Page and total must come from the same snapshot
                async with conn.transaction(isolation="repeatable_read", readonly=True):
                    total = await conn.fetchval(
                        f"SELECT count(*) FROM event_instances WHERE {where}", *args
                    )
                    rows = await conn.fetch(
                        f"""
                        SELECT {_COLUMNS} FROM event_instances
                        WHERE {where}
                        ORDER BY start_at {direction}, end_at {direction}, id
                        OFFSET ${n + 1} LIMIT ${n + 2}
                        """,
                        *args,
                        query.offset,
                        query.limit,
                    )
        return [_row_to_instance(r) for r in rows], int(total)

    async def get_instances_by_ids(self, ids: Sequence[uuid.UUID]) -> list[EventInstance]:
        if not ids:
            return []
        with _store_errors("get_instances_by_ids"):
            rows = await self._pool.fetch(
                f"SELECT {_COLUMNS} FROM event_instances WHERE id = ANY($1::uuid[])",
                list(ids),
            )
        return [_row_to_instance(r) for r in rows]

    async def insert_batch(self, instances: Sequence[EventInstance]) -> list[EventInstance]:
        if not instances:
            return []
        with _store_errors("insert_batch"):
            rows = await self._pool.fetch(
                f"""
                INSERT INTO event_instances (
                    owner_id, start_at, end_at, is_active, attendance_required,
                    title, location, category, generated_from
                )
                SELECT * FROM unnest(
                    $1::text[], $2::timestamp[], $3::timestamp[], $4::boolean[],
                    $5::boolean[], $6::text[], $7::text[], $8::text[], $9::uuid[]
                )
                RETURNING {_COLUMNS}
                """,
                [i.owner_id for i in instances],
                [i.start_at for i in instances],
                [i.end_at for i in instances],
                [i.is_active for i in instances],
                [i.attendance_required for i in instances],
                [i.title for i in instances],
                [i.location for i in instances],
                [str(i.category) for i in instances],
                [i.generated_from for i in instances],
            )
        created = sorted((_row_to_instance(r) for r in rows), key=lambda i: (i.start_at, i.end_at))
        logger.debug("Inserted %d event instance(s)", len(created))
        return created

    async def update_active_flag(
        self, owner_id: str, ids: Sequence[uuid.UUID], is_active: bool
    ) -> int:
        with _store_errors("update_active_flag"):
            status = await self._pool.execute(
                """
                UPDATE event_instances SET is_active = $3
                WHERE owner_id = $1 AND id = ANY($2::uuid[])
                """,
                owner_id,
                list(ids),
                is_active,
            )
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(status.split()[-1])

    async def delete_by_ids(
        self,
        owner_id: str,
        ids: Sequence[uuid.UUID],
        *,
        not_before: datetime | None = None,
    ) -> list[uuid.UUID]:
        with _store_errors("delete_by_ids"):
            rows = await self._pool.fetch(
                """
                DELETE FROM event_instances
                WHERE owner_id = $1
                  AND id = ANY($2::uuid[])
                  AND ($3::timestamp IS NULL OR start_at >= $3::timestamp)
                RETURNING id
                """,
                owner_id,
                list(ids),
                not_before,
            )
        return [r["id"] for r in rows]

    async def count_by_activity(self, owner_id: str) -> ScheduleStats:
        with _store_errors("count_by_activity"):
            row = await self._pool.fetchrow(
                """
                SELECT count(*) AS total,
                       count(*) FILTER (WHERE is_active) AS active
                FROM event_instances WHERE owner_id = $1
                """,
                owner_id,
            )
        total = int(row["total"])
        active = int(row["active"])
        return ScheduleStats(total=total, active=active, inactive=total - active)

    async def find_duplicate_ids(self, owner_id: str, *, not_before: datetime) -> list[uuid.UUID]:
        with _store_errors("find_duplicate_ids"):
            rows = await self._pool.fetch(
                """
                SELECT id FROM (
                    SELECT id, start_at,
                           row_number() OVER (
                               PARTITION BY start_at, end_at ORDER BY created_at, id
                           ) AS rn
                    FROM event_instances
                    WHERE owner_id = $1 AND start_at >= $2
                ) ranked
                WHERE rn > 1
                ORDER BY start_at, id
                """,
                owner_id,
                not_before,
            )
        return [r["id"] for r in rows]
