"""Database package public API."""

from .connection import SQLitePool, init_db_pool
from .migrations import run_migrations
from .models import Availability, Booking, Item, SyncTask, User, UserState
from .store import Store, open_store

__all__ = [
    "SQLitePool",
    "init_db_pool",
    "run_migrations",
    "Store",
    "open_store",
    "Availability",
    "Booking",
    "Item",
    "SyncTask",
    "User",
    "UserState",
]
