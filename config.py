"""Application configuration module.

Reads settings from environment variables with sane defaults for a single
node booking bot backed by an embedded SQLite store.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

from core.exceptions import ConfigurationError

# Load environment variables from .env file
load_dotenv()


def _get_bool(name: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    """Get integer from environment variable with fallback."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_str(name: str, default: str = "") -> str:
    """Get string from environment variable."""
    return os.getenv(name, default)


def _parse_int_list(value: str) -> tuple[int, ...]:
    """Parse comma-separated integers."""
    if not value:
        return ()
    try:
        return tuple(int(id_str) for id_str in value.split(",") if id_str.strip())
    except ValueError as exc:
        raise ConfigurationError(f"Invalid id list: {value!r}") from exc


def _parse_str_list(value: str, separator: str = ";") -> tuple[str, ...]:
    """Parse separated strings, dropping empty entries."""
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(separator) if part.strip())


def parse_reminder_time(value: str) -> Tuple[int, int]:
    """Parse ``HH:MM`` into an (hour, minute) pair.

    Raises:
        ConfigurationError: If the value is not a valid wall-clock time
    """
    try:
        hour_str, minute_str = value.strip().split(":")
        hour, minute = int(hour_str), int(minute_str)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid reminder time: {value!r}") from exc
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ConfigurationError(f"Invalid reminder time: {value!r}")
    return hour, minute


@dataclass(frozen=True)
class Config:
    bot_token: str
    managers: tuple[int, ...]
    blacklist: tuple[int, ...]
    managers_contacts: tuple[str, ...]
    database_path: str
    db_pool_size: int
    db_busy_timeout: int
    rate_limit_messages: int
    rate_limit_window: int
    max_booking_days: int
    min_booking_advance_hours: int
    pagination_size: int
    bookings_pagination_size: int
    reminder_time: str
    exports_path: str
    log_folder: str
    log_level: str
    mirror_path: str
    sync_poll_interval: float
    sync_batch_size: int
    sync_base_delay: float
    sync_max_retries: int
    backup_enabled: bool
    backup_folder: str
    backup_interval_hours: int
    backup_retention_days: int
    monitoring_enabled: bool
    monitoring_host: str
    monitoring_port: int
    bot_worker_threads: int
    message_queue_size: int
    bot_send_rate_limit: int
    api_keys: tuple[str, ...]
    api_rate_limit: int

    @property
    def reminder_hour_minute(self) -> Tuple[int, int]:
        return parse_reminder_time(self.reminder_time)


def load_config() -> Config:
    """Load application configuration from environment variables.

    Returns:
        Config: Application configuration with validated values

    Raises:
        ConfigurationError: If a value cannot be interpreted
    """
    config = Config(
        bot_token=_get_str("BOT_TOKEN", "your_bot_token_here"),
        managers=_parse_int_list(_get_str("MANAGERS", "")),
        blacklist=_parse_int_list(_get_str("BLACKLIST", "")),
        managers_contacts=_parse_str_list(_get_str("MANAGERS_CONTACTS", "")),
        database_path=_get_str("DATABASE_PATH", "data/bookings.sqlite"),
        db_pool_size=_get_int("DB_POOL_SIZE", 5),
        db_busy_timeout=_get_int("DB_BUSY_TIMEOUT", 5000),
        rate_limit_messages=_get_int("RATE_LIMIT_MESSAGES", 20),
        rate_limit_window=_get_int("RATE_LIMIT_WINDOW", 60),
        max_booking_days=_get_int("MAX_BOOKING_DAYS", 365),
        min_booking_advance_hours=_get_int("MIN_BOOKING_ADVANCE_HOURS", 0),
        pagination_size=_get_int("PAGINATION_SIZE", 8),
        bookings_pagination_size=_get_int("BOOKINGS_PAGINATION_SIZE", 5),
        reminder_time=_get_str("REMINDER_TIME", "09:00"),
        exports_path=_get_str("EXPORTS_PATH", "exports"),
        log_folder=_get_str("LOG_FOLDER", "logs"),
        log_level=_get_str("LOG_LEVEL", "INFO").upper(),
        mirror_path=_get_str("MIRROR_PATH", "data/mirror.xlsx"),
        sync_poll_interval=float(_get_int("SYNC_POLL_INTERVAL", 2)),
        sync_batch_size=_get_int("SYNC_BATCH_SIZE", 20),
        sync_base_delay=float(_get_int("SYNC_BASE_DELAY", 2)),
        sync_max_retries=_get_int("SYNC_MAX_RETRIES", 5),
        backup_enabled=_get_bool("BACKUP_ENABLED", True),
        backup_folder=_get_str("BACKUP_FOLDER", "backups"),
        backup_interval_hours=_get_int("BACKUP_INTERVAL_HOURS", 24),
        backup_retention_days=_get_int("BACKUP_RETENTION_DAYS", 7),
        monitoring_enabled=_get_bool("MONITORING_ENABLED", True),
        monitoring_host=_get_str("MONITORING_HOST", "0.0.0.0"),
        monitoring_port=_get_int("MONITORING_PORT", 8000),
        bot_worker_threads=_get_int("BOT_WORKER_THREADS", 4),
        message_queue_size=_get_int("MESSAGE_QUEUE_SIZE", 1000),
        bot_send_rate_limit=_get_int("BOT_SEND_RATE_LIMIT", 25),
        api_keys=_parse_str_list(_get_str("API_KEYS", ""), ","),
        api_rate_limit=_get_int("API_RATE_LIMIT", 20),
    )

    # Validate eagerly so a bad value fails at startup
    parse_reminder_time(config.reminder_time)
    if config.max_booking_days < 0 or config.min_booking_advance_hours < 0:
        raise ConfigurationError("Booking horizon values must be non-negative")
    if config.api_rate_limit < 1:
        raise ConfigurationError("API_RATE_LIMIT must be at least 1")

    return config
