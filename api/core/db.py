"""
Async database access helpers (raw SQL) using asyncpg.

`PoolProvider` owns the connection pool. It is created by `create_app()` and
stored on `app.state.pool_provider`; the pool itself is only opened on the
first `get_pool()` call and closed on shutdown (see `api/main.py`).

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

import asyncpg

from .config import Settings
from .errors import DependencyError

logger = logging.getLogger(__name__)

PoolFactory = Callable[..., Awaitable[Any]]


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url(settings: Settings) -> str:
    if settings.database_url:
        return _sanitize_database_url(settings.database_url)

    if not settings.db_host or not settings.db_database:
        raise DependencyError("Database is not configured.")

    user = quote(settings.db_user, safe="")
    password = quote(settings.db_password, safe="")
    auth = f"{user}:{password}@" if password else (f"{user}@" if user else "")
    return f"postgresql://{auth}{settings.db_host}:{settings.db_port}/{settings.db_database}"


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


class PoolProvider:
    """
    Lazily creates and memoizes one connection pool.

    Concurrent first calls are serialized so the pool factory runs once.
    A failed creation is not cached: the next caller tries again.
    """

    def __init__(self, settings: Settings, *, factory: PoolFactory | None = None) -> None:
        self._settings = settings
        self._factory = factory or asyncpg.create_pool
        self._pool: Any = None
        self._lock = asyncio.Lock()

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    async def get_pool(self) -> Any:
        if self._pool is not None:
            return self._pool

        async with self._lock:
            if self._pool is not None:
                return self._pool
            try:
                self._pool = await self._factory(
                    dsn=database_url(self._settings),
                    min_size=self._settings.db_pool_min,
                    max_size=self._settings.db_pool_max,
                    command_timeout=self._settings.db_command_timeout,
                )
            except DependencyError:
                raise
            except (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
                logger.error("Failed to create database pool: %s", exc)
                raise DependencyError("Database unavailable.") from exc
            logger.info("Database pool created")
            return self._pool

    async def close(self) -> None:
        async with self._lock:
            if self._pool is None:
                return None
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    async def fetch_one(self, sql: str, *args: Any) -> dict[str, Any] | None:
        """
        Run a query and return a single row as a dict (or None).
        """
        pool = await self.get_pool()
        row = await pool.fetchrow(sql, *args)
        return _record_to_dict(row) if row is not None else None

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """
        Run a query and return all rows as a list of dicts.
        """
        pool = await self.get_pool()
        rows = await pool.fetch(sql, *args)
        return [_record_to_dict(r) for r in rows]

    async def execute(self, sql: str, *args: Any) -> None:
        """
        Run a statement (INSERT/UPDATE/DELETE/DDL). No result returned.
        """
        pool = await self.get_pool()
        await pool.execute(sql, *args)

    async def execute_script(self, statements: tuple[str, ...] | list[str]) -> None:
        """
        Run several statements on one connection inside a transaction.
        """
        pool = await self.get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                for statement in statements:
                    await conn.execute(statement)
