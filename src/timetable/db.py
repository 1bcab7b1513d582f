"""PostgreSQL connection settings and the asyncpg pool for timetable.

Where the server is and who to log in as comes from the environment
(``DATABASE_URL``, else ``POSTGRES_*``). Which database, which schema and how
big a pool come from ``[timetable.db]``. Alembic runs on a sync driver and
wants a libpq URL, so ``Database.dsn()`` renders one from the same settings.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs, quote, urlparse

import asyncpg

from timetable.config import DatabaseConfig

logger = logging.getLogger(__name__)

_SSL_MODES = frozenset({"disable", "allow", "prefer", "require", "verify-ca", "verify-full"})


def _sslmode(raw: str | None) -> str | None:
    """Lower-case a libpq sslmode, or None when unset or unknown."""
    mode = (raw or "").strip().lower()
    if not mode:
        return None
    if mode not in _SSL_MODES:
        logger.warning("Ignoring unknown PostgreSQL sslmode %r", raw)
        return None
    return mode


@dataclass(frozen=True)
class ConnectionParams:
    """Server address and credentials, shared by every database on it."""

    host: str = "localhost"
    port: int = 5432
    user: str = "timetable"
    password: str = "timetable"
    sslmode: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ConnectionParams:
        """Read ``DATABASE_URL`` if set, otherwise the ``POSTGRES_*`` variables.

        The database name in ``DATABASE_URL`` is ignored; it comes from config.
        """
        env = os.environ if environ is None else environ
        url = env.get("DATABASE_URL")
        if url:
            parsed = urlparse(url)
            return cls(
                host=parsed.hostname or cls.host,
                port=parsed.port or cls.port,
                user=parsed.username or cls.user,
                password=parsed.password or cls.password,
                sslmode=_sslmode(parse_qs(parsed.query).get("sslmode", [None])[0]),
            )
        return cls(
            host=env.get("POSTGRES_HOST", cls.host),
            port=int(env.get("POSTGRES_PORT", cls.port)),
            user=env.get("POSTGRES_USER", cls.user),
            password=env.get("POSTGRES_PASSWORD", cls.password),
            sslmode=_sslmode(env.get("POSTGRES_SSLMODE")),
        )

    def connect_kwargs(self, database: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": database,
        }
        if self.sslmode is not None:
            kwargs["ssl"] = self.sslmode
        return kwargs


class Database:
    """One timetable database: provisioning, the Alembic URL and the pool.

    Args:
        config: The ``[timetable.db]`` section (name, schema, pool bounds).
        params: Server address and credentials; read from the environment
            when omitted.
    """

    def __init__(self, config: DatabaseConfig, params: ConnectionParams | None = None) -> None:
        self.config = config
        self.params = params or ConnectionParams.from_env()
        self.pool: asyncpg.Pool | None = None

    @property
    def name(self) -> str:
        return self.config.name

    def search_path(self) -> str | None:
        """``<schema>,public`` when the tables live in their own schema."""
        schema = self.config.schema
        if schema is None or schema == "public":
            return schema
        return f"{schema},public"

    def dsn(self) -> str:
        """Return a libpq URL for tools that do not take asyncpg kwargs (Alembic)."""
        p = self.params
        url = (
            f"postgresql://{quote(p.user, safe='')}:{quote(p.password, safe='')}"
            f"@{p.host}:{p.port}/{quote(self.name, safe='')}"
        )
        if p.sslmode is not None:
            url += f"?sslmode={p.sslmode}"
        return url

    async def provision(self) -> None:
        """Create the database if it doesn't exist.

        Connects to the 'postgres' maintenance database, since the target
        database cannot be connected to before it exists.
        """
        conn = await asyncpg.connect(**self.params.connect_kwargs("postgres"))
        try:
            if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", self.name):
                logger.info("Database already exists: %s", self.name)
                return
            # CREATE DATABASE cannot take bind parameters
            quoted = self.name.replace('"', '""')
            await conn.execute(f'CREATE DATABASE "{quoted}" TEMPLATE template0')
            logger.info("Created database: %s", self.name)
        finally:
            await conn.close()

    async def connect(self) -> asyncpg.Pool:
        """Create and return the connection pool used by the Postgres stores."""
        kwargs = self.params.connect_kwargs(self.name)
        search_path = self.search_path()
        if search_path is not None:
            kwargs["server_settings"] = {"search_path": search_path}
        self.pool = await asyncpg.create_pool(
            min_size=self.config.min_pool_size,
            max_size=self.config.max_pool_size,
            **kwargs,
        )
        logger.info("Connection pool created for: %s", self.name)
        return self.pool

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Connection pool closed for: %s", self.name)
