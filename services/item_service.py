"""Active item catalogue."""

from __future__ import annotations

from typing import List, Optional

from cachetools import TTLCache

from core import get_logger
from core.exceptions import NotFoundError, ValidationError
from database.models import Item
from database.store import Store

logger = get_logger(__name__)

_CATALOGUE_KEY = "active"


class ItemService:
    """Thin CRUD wrapper with a short-lived cache of the active list."""

    def __init__(self, store: Store, cache_ttl: float = 30.0) -> None:
        self.store = store
        self._cache: TTLCache = TTLCache(maxsize=1, ttl=cache_ttl)

    def invalidate(self) -> None:
        self._cache.clear()

    async def list_active(self) -> List[Item]:
        items = self._cache.get(_CATALOGUE_KEY)
        if items is None:
            items = await self.store.list_active_items_sorted()
            self._cache[_CATALOGUE_KEY] = items
        return list(items)

    async def get_item(self, item_id: int) -> Item:
        return await self.store.get_item_by_id(item_id)

    async def get_active_item(self, item_id: int) -> Item:
        """Like ``get_item`` but treats a deactivated item as missing."""
        item = await self.store.get_item_by_id(item_id)
        if not item.is_active:
            raise NotFoundError(f"Item {item_id} is not active")
        return item

    async def get_by_name(self, name: str) -> Item:
        return await self.store.get_item_by_name(name)

    async def create_item(self, name: str, total_quantity: int, description: Optional[str] = None) -> Item:
        """Create an item at the end of the list.

        Raises:
            ValidationError: If the name is empty, already taken by an
                active item, or quantity is below 1
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Название аппарата не может быть пустым")
        if total_quantity < 1:
            raise ValidationError("Количество должно быть не меньше 1")
        sort_order = await self.store.get_max_sort_order() + 1
        item = await self.store.create_item(name, total_quantity, sort_order, description)
        self.invalidate()
        logger.info(f"Item {item.name!r} created (qty={item.total_quantity}, order={item.sort_order})")
        return item

    async def update_item(
        self,
        item_id: int,
        name: Optional[str] = None,
        total_quantity: Optional[int] = None,
        description: Optional[str] = None,
    ) -> Item:
        if total_quantity is not None and total_quantity < 1:
            raise ValidationError("Количество должно быть не меньше 1")
        item = await self.store.update_item(item_id, name, total_quantity, description)
        self.invalidate()
        return item

    async def deactivate_item(self, item_id: int) -> None:
        await self.store.deactivate_item(item_id)
        self.invalidate()
        logger.info(f"Item {item_id} deactivated")

    async def reorder_item(self, item_id: int, new_order: int) -> int:
        """Set the sort order, clamped to at least 1, and return it."""
        order = max(new_order, 1)
        await self.store.reorder_item(item_id, order)
        self.invalidate()
        return order

    async def move_item(self, item_id: int, delta: int) -> int:
        item = await self.store.get_item_by_id(item_id)
        return await self.reorder_item(item_id, item.sort_order + delta)
