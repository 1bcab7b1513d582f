"""PostgreSQL server of record for status fields."""

from __future__ import annotations

import logging
from typing import Any

import asyncpg

from timetable.errors import StoreError
from timetable.sync.store import StatusField, StatusStore, canonicalize_status

logger = logging.getLogger(__name__)


class PostgresStatusStore(StatusStore):
    """StatusStore over the ``status_fields`` table.

    Values are canonicalized before they are written; rejected values raise
    ``StatusRejectedError`` without touching the database.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def get_field(self, entity_id: str, field_key: str) -> StatusField | None:
        try:
            row = await self._pool.fetchrow(
                """
                SELECT entity_id, field_key, value, updated_at
                FROM status_fields
                WHERE entity_id = $1 AND field_key = $2
                """,
                entity_id,
                field_key,
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise StoreError(f"read_status failed: {exc}") from exc
        if row is None:
            return None
        return StatusField.model_validate(dict(row))

    async def read_status(self, entity_id: str, field_key: str) -> str | None:
        field = await self.get_field(entity_id, field_key)
        return field.value if field is not None else None

    async def put_field(self, entity_id: str, field_key: str, value: Any) -> StatusField:
        canonical = canonicalize_status(field_key, value)
        try:
            row = await self._pool.fetchrow(
                """
                INSERT INTO status_fields (entity_id, field_key, value, updated_at)
                VALUES ($1, $2, $3, LOCALTIMESTAMP)
                ON CONFLICT (entity_id, field_key)
                DO UPDATE SET value = EXCLUDED.value, updated_at = EXCLUDED.updated_at
                RETURNING entity_id, field_key, value, updated_at
                """,
                entity_id,
                field_key,
                canonical,
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise StoreError(f"write_status failed: {exc}") from exc
        logger.debug("Status %s/%s set to %s", entity_id, field_key, canonical)
        return StatusField.model_validate(dict(row))

    async def write_status(self, entity_id: str, field_key: str, value: str) -> str:
        field = await self.put_field(entity_id, field_key, value)
        return field.value
