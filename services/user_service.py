"""User classification and profile bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional

from core import get_logger
from core.constants import SchedulerDefaults
from database.models import User
from database.store import Store

logger = get_logger(__name__)


@dataclass(slots=True)
class UserStats:
    """Figures shown on the manager statistics screen."""

    total_users: int
    active_users: int
    managers: int
    blacklisted: int
    recent_users: List[User] = field(default_factory=list)
    bookings_today: Dict[str, int] = field(default_factory=dict)
    bookings_week: Dict[str, int] = field(default_factory=dict)
    bookings_month: Dict[str, int] = field(default_factory=dict)


class UserService:
    """Resolves manager/blacklist membership and persists profiles.

    The membership index is built once from configuration and never
    mutated afterwards.
    """

    def __init__(
        self,
        store: Store,
        managers: Iterable[int] = (),
        blacklist: Iterable[int] = (),
    ) -> None:
        self.store = store
        self._managers: FrozenSet[int] = frozenset(managers)
        self._blacklist: FrozenSet[int] = frozenset(blacklist)

    def is_manager(self, telegram_id: int) -> bool:
        return telegram_id in self._managers

    def is_blacklisted(self, telegram_id: int) -> bool:
        return telegram_id in self._blacklist

    @property
    def manager_ids(self) -> FrozenSet[int]:
        return self._managers

    async def save_user(self, user: User) -> User:
        """Upsert a profile; role flags always come from configuration."""
        user.is_manager = self.is_manager(user.telegram_id)
        user.is_blacklisted = self.is_blacklisted(user.telegram_id)
        return await self.store.upsert_user(user)

    async def touch_activity(self, telegram_id: int) -> None:
        await self.store.touch_user_activity(telegram_id)

    async def update_phone(self, telegram_id: int, phone: str) -> None:
        await self.store.update_user_phone(telegram_id, phone)

    async def get_user(self, telegram_id: int) -> User:
        return await self.store.get_user_by_platform_id(telegram_id)

    async def list_users(self) -> List[User]:
        return await self.store.list_all_users()

    async def count_active_users(self, days: int = SchedulerDefaults.ACTIVE_USERS_DAYS) -> int:
        return len(await self.store.list_active_users_since(days))

    async def collect_stats(self, today: Optional[date] = None) -> UserStats:
        today = today or date.today()
        users = await self.store.list_all_users()
        active = await self.store.list_active_users_since(SchedulerDefaults.ACTIVE_USERS_DAYS)
        return UserStats(
            total_users=len(users),
            active_users=len(active),
            managers=sum(1 for user in users if user.is_manager),
            blacklisted=sum(1 for user in users if user.is_blacklisted),
            recent_users=users[:5],
            bookings_today=await self.store.booking_summary(today, today),
            bookings_week=await self.store.booking_summary(today - timedelta(days=6), today),
            bookings_month=await self.store.booking_summary(today - timedelta(days=29), today),
        )
