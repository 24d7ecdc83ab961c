"""Base repository pattern for database operations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence

import aiosqlite

from core.exceptions import StorageError
from core.logger import get_logger
from database.connection import SQLitePool

logger = get_logger(__name__)


class BaseRepository:
    """Base repository with common database operations.

    Every engine error is re-raised as :class:`StorageError` so callers above
    the store never see driver exceptions.
    """

    def __init__(self, pool: SQLitePool) -> None:
        self.pool = pool

    async def execute(self, query: str, params: Sequence[Any] = ()) -> int:
        """Execute a statement and return the number of affected rows."""
        try:
            async with self.pool.connection() as conn:
                cursor = await conn.execute(query, params)
                await conn.commit()
                return cursor.rowcount
        except aiosqlite.Error as exc:
            logger.error(f"Query failed: {exc}", exc_info=True)
            raise StorageError(str(exc)) from exc

    async def insert(self, query: str, params: Sequence[Any] = ()) -> int:
        """Execute an INSERT and return the new row id."""
        try:
            async with self.pool.connection() as conn:
                cursor = await conn.execute(query, params)
                await conn.commit()
                return cursor.lastrowid
        except aiosqlite.Error as exc:
            logger.error(f"Insert failed: {exc}", exc_info=True)
            raise StorageError(str(exc)) from exc

    async def fetch_one(self, query: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        """Fetch a single row."""
        try:
            async with self.pool.connection() as conn:
                cursor = await conn.execute(query, params)
                return await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(str(exc)) from exc

    async def fetch_all(self, query: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        """Fetch all rows."""
        try:
            async with self.pool.connection() as conn:
                cursor = await conn.execute(query, params)
                return list(await cursor.fetchall())
        except aiosqlite.Error as exc:
            raise StorageError(str(exc)) from exc

    async def fetch_value(self, query: str, params: Sequence[Any] = ()) -> Optional[Any]:
        """Fetch a single value from a single row."""
        row = await self.fetch_one(query, params)
        return row[0] if row else None

    @asynccontextmanager
    async def transaction(self, immediate: bool = False) -> AsyncIterator[aiosqlite.Connection]:
        """Run several statements on one connection inside a transaction.

        Args:
            immediate: Take the write lock up front (``BEGIN IMMEDIATE``)

        Driver errors raised inside the block propagate unchanged so callers
        can tell lock contention apart from other failures.
        """
        async with self.pool.connection() as conn:
            await conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()
