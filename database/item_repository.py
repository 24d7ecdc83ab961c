"""Repository for rentable items."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

import aiosqlite

from core.constants import ACTIVE_STATUSES
from core.exceptions import CapacityConflictError, NotFoundError, StorageError, ValidationError
from database.base_repository import BaseRepository
from database.models import Item, item_name_key

_ACTIVE_PLACEHOLDERS = ",".join("?" * len(ACTIVE_STATUSES))
_ACTIVE_PARAMS = tuple(sorted(ACTIVE_STATUSES))


def _is_unique_violation(exc: aiosqlite.IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(exc)


def _duplicate_name(name: str) -> ValidationError:
    return ValidationError(f"Аппарат с названием «{name.strip()}» уже существует")


class ItemRepository(BaseRepository):
    """Repository for item catalogue operations."""

    async def create_item(
        self,
        name: str,
        total_quantity: int,
        sort_order: int,
        description: Optional[str] = None,
    ) -> Item:
        """Insert an active item.

        Raises:
            ValidationError: If an active item with the same name exists
        """
        now = datetime.now().isoformat()
        try:
            async with self.transaction() as conn:
                cursor = await conn.execute(
                    """
                    INSERT INTO items (
                        name, name_key, description, total_quantity, sort_order, is_active, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, 1, ?, ?)
                    """,
                    (name, item_name_key(name), description, total_quantity, sort_order, now, now),
                )
                item_id = cursor.lastrowid
        except aiosqlite.IntegrityError as exc:
            if _is_unique_violation(exc):
                raise _duplicate_name(name) from exc
            raise StorageError(str(exc)) from exc
        except aiosqlite.Error as exc:
            raise StorageError(str(exc)) from exc
        return await self.get_item_by_id(item_id)

    async def get_item_by_id(self, item_id: int) -> Item:
        row = await self.fetch_one("SELECT * FROM items WHERE id=?", (item_id,))
        if row is None:
            raise NotFoundError(f"Item {item_id} not found")
        return Item.from_row(row)

    async def get_item_by_name(self, name: str) -> Item:
        """Find an active item by name, case-insensitive."""
        row = await self.fetch_one(
            "SELECT * FROM items WHERE is_active=1 AND name_key=?",
            (item_name_key(name),),
        )
        if row is None:
            raise NotFoundError(f"Item {name!r} not found")
        return Item.from_row(row)

    async def list_active_items_sorted(self) -> List[Item]:
        rows = await self.fetch_all(
            "SELECT * FROM items WHERE is_active=1 ORDER BY sort_order ASC, name ASC"
        )
        return [Item.from_row(row) for row in rows]

    async def get_max_sort_order(self) -> int:
        value = await self.fetch_value("SELECT MAX(sort_order) FROM items WHERE is_active=1")
        return int(value or 0)

    async def update_item(
        self,
        item_id: int,
        name: Optional[str] = None,
        total_quantity: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Item:
        """Update item fields, refusing a capacity below the busiest upcoming day.

        Raises:
            NotFoundError: If the item does not exist
            CapacityConflictError: If a future day already holds more
                ACTIVE bookings than the new quantity
        """
        try:
            async with self.transaction(immediate=True) as conn:
                cursor = await conn.execute("SELECT * FROM items WHERE id=?", (item_id,))
                row = await cursor.fetchone()
                if row is None:
                    raise NotFoundError(f"Item {item_id} not found")
                current = Item.from_row(row)

                if total_quantity is not None and total_quantity < current.total_quantity:
                    cursor = await conn.execute(
                        f"""
                        SELECT MAX(cnt) FROM (
                            SELECT COUNT(*) AS cnt FROM bookings
                            WHERE item_id=? AND date>=? AND status IN ({_ACTIVE_PLACEHOLDERS})
                            GROUP BY date
                        )
                        """,
                        (item_id, date.today().isoformat(), *_ACTIVE_PARAMS),
                    )
                    peak_row = await cursor.fetchone()
                    peak = int(peak_row[0] or 0) if peak_row else 0
                    if peak > total_quantity:
                        raise CapacityConflictError(item_id, peak, total_quantity)

                new_name = name if name is not None else current.name
                await conn.execute(
                    """
                    UPDATE items SET name=?, name_key=?, total_quantity=?, description=?, updated_at=?
                    WHERE id=?
                    """,
                    (
                        new_name,
                        item_name_key(new_name),
                        total_quantity if total_quantity is not None else current.total_quantity,
                        description if description is not None else current.description,
                        datetime.now().isoformat(),
                        item_id,
                    ),
                )
        except aiosqlite.IntegrityError as exc:
            if _is_unique_violation(exc):
                raise _duplicate_name(name or "") from exc
            raise StorageError(str(exc)) from exc
        except aiosqlite.Error as exc:
            raise StorageError(str(exc)) from exc
        return await self.get_item_by_id(item_id)

    async def deactivate_item(self, item_id: int) -> None:
        affected = await self.execute(
            "UPDATE items SET is_active=0, updated_at=? WHERE id=?",
            (datetime.now().isoformat(), item_id),
        )
        if affected == 0:
            raise NotFoundError(f"Item {item_id} not found")

    async def reorder_item(self, item_id: int, new_order: int) -> None:
        affected = await self.execute(
            "UPDATE items SET sort_order=?, updated_at=? WHERE id=?",
            (new_order, datetime.now().isoformat(), item_id),
        )
        if affected == 0:
            raise NotFoundError(f"Item {item_id} not found")
