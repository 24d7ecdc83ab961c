"""Database schema migrations."""

from __future__ import annotations

import aiosqlite

from core.exceptions import StorageError
from core.logger import get_logger

from .connection import SQLitePool
from .models import item_name_key

logger = get_logger(__name__)


SCHEMA_SQL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        name_key TEXT NOT NULL DEFAULT '',
        description TEXT,
        total_quantity INTEGER NOT NULL DEFAULT 1 CHECK (total_quantity >= 1),
        sort_order INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_items_sort ON items(is_active, sort_order, name);",
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        telegram_id INTEGER UNIQUE NOT NULL,
        username TEXT,
        first_name TEXT,
        last_name TEXT,
        phone TEXT,
        is_manager INTEGER NOT NULL DEFAULT 0,
        is_blacklisted INTEGER NOT NULL DEFAULT 0,
        language_code TEXT,
        last_activity TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_users_last_activity ON users(last_activity);",
    """
    CREATE TABLE IF NOT EXISTS bookings (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        user_name TEXT,
        user_nickname TEXT,
        phone TEXT,
        item_id INTEGER NOT NULL,
        item_name TEXT,
        date TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        comment TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY(item_id) REFERENCES items(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_bookings_item_date ON bookings(item_id, date, status);",
    "CREATE INDEX IF NOT EXISTS idx_bookings_date ON bookings(date);",
    "CREATE INDEX IF NOT EXISTS idx_bookings_user ON bookings(user_id, date);",
    """
    CREATE TABLE IF NOT EXISTS user_states (
        user_id INTEGER PRIMARY KEY,
        step TEXT NOT NULL,
        data TEXT NOT NULL DEFAULT '{}',
        updated_at TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS sync_queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        task_type TEXT NOT NULL,
        booking_id INTEGER,
        payload TEXT,
        booking_status TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        retry_count INTEGER NOT NULL DEFAULT 0,
        last_error TEXT,
        next_retry_at TEXT,
        created_at TEXT NOT NULL,
        processed_at TEXT
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_due ON sync_queue(status, next_retry_at);",
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_booking ON sync_queue(booking_id, id);",
    """
    CREATE TABLE IF NOT EXISTS rate_limits (
        user_id INTEGER PRIMARY KEY,
        window_start REAL NOT NULL,
        count INTEGER NOT NULL DEFAULT 0
    );
    """,
)

# Name is unique among active items only, compared case-insensitively
ITEM_NAME_INDEX_SQL: tuple[str, ...] = (
    "DROP INDEX IF EXISTS idx_items_active_name;",
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_items_active_name_key ON items(name_key) WHERE is_active = 1;",
)


async def _upgrade_item_name_key(conn: aiosqlite.Connection) -> None:
    """Add and backfill ``items.name_key`` on databases created before it existed."""
    cursor = await conn.execute("PRAGMA table_info(items)")
    columns = {row[1] for row in await cursor.fetchall()}
    if "name_key" not in columns:
        logger.info("Adding items.name_key column")
        await conn.execute("ALTER TABLE items ADD COLUMN name_key TEXT NOT NULL DEFAULT ''")

    cursor = await conn.execute("SELECT id, name FROM items WHERE name_key = ''")
    for item_id, name in await cursor.fetchall():
        await conn.execute("UPDATE items SET name_key=? WHERE id=?", (item_name_key(name), item_id))


async def run_migrations(pool: SQLitePool) -> None:
    """Create all tables and indexes in one transaction."""
    async with pool.connection() as conn:
        await conn.execute("BEGIN")
        try:
            for statement in SCHEMA_SQL:
                await conn.execute(statement)
            await _upgrade_item_name_key(conn)
            for statement in ITEM_NAME_INDEX_SQL:
                await conn.execute(statement)
        except aiosqlite.Error as exc:
            await conn.rollback()
            logger.error(f"Migration failed: {exc}", exc_info=True)
            raise StorageError(str(exc)) from exc
        else:
            await conn.commit()
    logger.info("✅ Database schema is up to date")
