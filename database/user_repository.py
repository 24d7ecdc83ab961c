"""Repository for chat users."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List

from core.exceptions import NotFoundError
from database.base_repository import BaseRepository
from database.models import User


class UserRepository(BaseRepository):
    """Repository for user profile operations."""

    async def upsert_user(self, user: User) -> User:
        """Insert or update a user keyed by telegram id.

        Phone is only overwritten when the incoming value is set.
        """
        now = datetime.now().isoformat()
        last_activity = (user.last_activity or datetime.now()).isoformat()
        await self.execute(
            """
            INSERT INTO users (
                telegram_id, username, first_name, last_name, phone,
                is_manager, is_blacklisted, language_code, last_activity,
                created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(telegram_id) DO UPDATE SET
                username=excluded.username,
                first_name=excluded.first_name,
                last_name=excluded.last_name,
                phone=COALESCE(excluded.phone, users.phone),
                is_manager=excluded.is_manager,
                is_blacklisted=excluded.is_blacklisted,
                language_code=excluded.language_code,
                last_activity=excluded.last_activity,
                updated_at=excluded.updated_at
            """,
            (
                user.telegram_id,
                user.username,
                user.first_name,
                user.last_name,
                user.phone or None,
                int(user.is_manager),
                int(user.is_blacklisted),
                user.language_code,
                last_activity,
                now,
                now,
            ),
        )
        return await self.get_user_by_platform_id(user.telegram_id)

    async def get_user_by_platform_id(self, telegram_id: int) -> User:
        row = await self.fetch_one("SELECT * FROM users WHERE telegram_id=?", (telegram_id,))
        if row is None:
            raise NotFoundError(f"User {telegram_id} not found")
        return User.from_row(row)

    async def get_user_by_id(self, user_id: int) -> User:
        row = await self.fetch_one("SELECT * FROM users WHERE id=?", (user_id,))
        if row is None:
            raise NotFoundError(f"User #{user_id} not found")
        return User.from_row(row)

    async def list_all_users(self) -> List[User]:
        rows = await self.fetch_all("SELECT * FROM users ORDER BY created_at DESC, id DESC")
        return [User.from_row(row) for row in rows]

    async def list_active_users_since(self, days: int) -> List[User]:
        since = (datetime.now() - timedelta(days=days)).isoformat()
        rows = await self.fetch_all(
            "SELECT * FROM users WHERE last_activity >= ? ORDER BY last_activity DESC",
            (since,),
        )
        return [User.from_row(row) for row in rows]

    async def list_users_by_manager_flag(self, is_manager: bool) -> List[User]:
        rows = await self.fetch_all(
            "SELECT * FROM users WHERE is_manager=? ORDER BY id",
            (int(is_manager),),
        )
        return [User.from_row(row) for row in rows]

    async def count_users(self, blacklisted_only: bool = False) -> int:
        query = "SELECT COUNT(*) FROM users"
        if blacklisted_only:
            query += " WHERE is_blacklisted=1"
        return int(await self.fetch_value(query) or 0)

    async def update_user_phone(self, telegram_id: int, phone: str) -> None:
        affected = await self.execute(
            "UPDATE users SET phone=?, updated_at=? WHERE telegram_id=?",
            (phone, datetime.now().isoformat(), telegram_id),
        )
        if affected == 0:
            raise NotFoundError(f"User {telegram_id} not found")

    async def touch_user_activity(self, telegram_id: int) -> None:
        """Bump last_activity; unknown users are ignored."""
        await self.execute(
            "UPDATE users SET last_activity=? WHERE telegram_id=?",
            (datetime.now().isoformat(), telegram_id),
        )
