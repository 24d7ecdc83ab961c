"""Single persistence facade used by the services."""

from __future__ import annotations

from database.booking_repository import BookingRepository
from database.connection import SQLitePool, init_db_pool
from database.item_repository import ItemRepository
from database.migrations import run_migrations
from database.outbox_repository import OutboxRepository
from database.state_repository import StateRepository
from database.user_repository import UserRepository


class Store(
    ItemRepository,
    UserRepository,
    BookingRepository,
    OutboxRepository,
    StateRepository,
):
    """All repositories over one connection pool.

    The store is the only component that mutates persistent state.
    """

    async def close(self) -> None:
        await self.pool.close()


async def open_store(database_path: str, pool_size: int = 5, busy_timeout_ms: int = 5000) -> Store:
    """Open the pool, apply migrations and return a ready store."""
    pool: SQLitePool = await init_db_pool(database_path, pool_size, busy_timeout_ms)
    await run_migrations(pool)
    return Store(pool)
