from __future__ import annotations

import asyncio
from typing import Any

from sqlalchemy import make_url, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from ..logging_config import logger
from .base import Clock, StoreUnavailable, system_clock

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS items (
        id INTEGER PRIMARY KEY,
        class TEXT NOT NULL,
        value TEXT NOT NULL,
        timestamp REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS classidx ON items (class ASC)",
    "CREATE INDEX IF NOT EXISTS keyidx ON items (value ASC)",
)

INSERT_MARK = text("INSERT INTO items (value, class, timestamp) VALUES (:value, :class_name, :timestamp)")
COUNT_BY_VALUE = text("SELECT COUNT(*) FROM items WHERE value = :value AND timestamp > :threshold")
COUNT_BY_CLASS = text(
    "SELECT COUNT(*) FROM items WHERE value = :value AND class = :class_name AND timestamp > :threshold"
)
DELETE_OLDER = text("DELETE FROM items WHERE timestamp < :cutoff")
COUNT_ALL = text("SELECT COUNT(*) FROM items")


def _build_engine(db_url: str) -> AsyncEngine:
    url = make_url(db_url)
    if url.get_backend_name() == "sqlite":
        # One shared connection, otherwise every checkout of an in-memory
        # database would see an empty schema.
        return create_async_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(url, pool_pre_ping=True)


class SqlMarkStore:
    """Marks in an ``items`` table with one index on class and one on value."""

    def __init__(self, db_url: str = "sqlite+aiosqlite://", clock: Clock = system_clock) -> None:
        self._db_url = db_url
        self._clock = clock
        self._engine: AsyncEngine | None = None
        self._lock = asyncio.Lock()

    async def open(self) -> None:
        if self._engine is not None:
            return
        self._engine = _build_engine(self._db_url)
        try:
            async with self._engine.begin() as conn:
                for statement in SCHEMA:
                    await conn.execute(text(statement))
                # Counts never outlive the process.
                await conn.execute(text("DELETE FROM items"))
        except SQLAlchemyError as exc:
            await self._engine.dispose()
            self._engine = None
            raise StoreUnavailable(f"cannot open {self._db_url}: {exc}") from exc
        logger.info("store.opened", backend="sql", url=make_url(self._db_url).render_as_string(hide_password=True))

    async def close(self) -> None:
        if self._engine is None:
            return
        async with self._lock:
            await self._engine.dispose()
            self._engine = None

    async def _execute(self, statement: Any, params: dict[str, Any]) -> Any:
        async with self._lock:
            if self._engine is None:
                raise StoreUnavailable("sql store is closed")
            try:
                async with self._engine.begin() as conn:
                    result = await conn.execute(statement, params)
                    if result.returns_rows:
                        return result.scalar_one()
                    return result.rowcount
            except SQLAlchemyError as exc:
                raise StoreUnavailable(str(exc)) from exc

    async def record(self, value: str, class_name: str, timestamp: float) -> None:
        await self._execute(INSERT_MARK, {"value": value, "class_name": class_name, "timestamp": timestamp})

    async def count_since(self, value: str, threshold: float, class_name: str | None = None) -> int:
        if class_name is None:
            count = await self._execute(COUNT_BY_VALUE, {"value": value, "threshold": threshold})
        else:
            count = await self._execute(
                COUNT_BY_CLASS,
                {"value": value, "class_name": class_name, "threshold": threshold},
            )
        return int(count)

    async def purge_older_than(self, age: float) -> int:
        removed = await self._execute(DELETE_OLDER, {"cutoff": self._clock() - age})
        return max(int(removed), 0)

    async def size(self) -> int:
        return int(await self._execute(COUNT_ALL, {}))
