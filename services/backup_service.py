"""Periodic backups of the SQLite database."""

from __future__ import annotations

import asyncio
import gzip
import shutil
import sqlite3
from contextlib import suppress
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional

from core import get_logger
from core.constants import BackupDefaults

logger = get_logger(__name__)

BACKUP_PREFIX = "bookings_backup_"


class BackupService:
    """Copies the live database with the SQLite online backup API.

    Old copies are pruned by age after every run.
    """

    def __init__(
        self,
        db_path: str,
        backup_dir: str = "backups",
        interval_hours: int = BackupDefaults.INTERVAL_HOURS,
        retention_days: int = BackupDefaults.RETENTION_DAYS,
        compress: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = Path(db_path)
        self.backup_dir = Path(backup_dir)
        self.interval = interval_hours * 3600
        self.retention_days = retention_days
        self.compress = compress
        self.clock = clock
        self.running = False
        self.backup_task: Optional[asyncio.Task] = None

    def backup_filename(self) -> str:
        timestamp = self.clock().strftime("%Y%m%d_%H%M%S")
        filename = f"{BACKUP_PREFIX}{timestamp}.sqlite"
        if self.compress:
            filename += ".gz"
        return filename

    def backup_database(self) -> Path:
        """Write one consistent copy of the database.

        Raises:
            FileNotFoundError: If the database file does not exist
        """
        if not self.db_path.exists():
            raise FileNotFoundError(f"Database file not found: {self.db_path}")

        self.backup_dir.mkdir(parents=True, exist_ok=True)
        backup_path = self.backup_dir / self.backup_filename()
        raw_path = backup_path.with_suffix("") if self.compress else backup_path

        source = sqlite3.connect(self.db_path)
        try:
            target = sqlite3.connect(raw_path)
            try:
                source.backup(target)
            finally:
                target.close()
        finally:
            source.close()

        if self.compress:
            with open(raw_path, "rb") as f_in, gzip.open(backup_path, "wb") as f_out:
                shutil.copyfileobj(f_in, f_out)
            raw_path.unlink()

        logger.info(f"Database backup created: {backup_path}")
        return backup_path

    def prune_old_backups(self) -> List[Path]:
        """Delete backups older than the retention period."""
        if not self.backup_dir.exists():
            return []
        cutoff = (self.clock() - timedelta(days=self.retention_days)).timestamp()
        removed = []
        for path in self.backup_dir.glob(f"{BACKUP_PREFIX}*"):
            if path.is_file() and path.stat().st_mtime < cutoff:
                try:
                    path.unlink()
                    removed.append(path)
                except OSError as e:
                    logger.warning(f"Failed to remove old backup {path}: {e}")
        if removed:
            logger.info(f"🧹 Removed {len(removed)} old backups")
        return removed

    def run_backup(self) -> Optional[Path]:
        try:
            path = self.backup_database()
        except (OSError, sqlite3.Error) as e:
            logger.error(f"❌ Backup failed: {e}", exc_info=True)
            return None
        self.prune_old_backups()
        return path

    async def backup_loop(self):
        logger.info(f"🔄 Backup loop started (interval: {self.interval / 3600:.1f}h)")
        while self.running:
            await asyncio.to_thread(self.run_backup)
            await asyncio.sleep(self.interval)

    async def start(self):
        if self.running:
            logger.warning("Backup service is already running")
            return
        self.running = True
        self.backup_task = asyncio.create_task(self.backup_loop())
        logger.info("🚀 Backup service started")

    async def stop(self):
        if not self.running:
            return
        self.running = False
        if self.backup_task:
            self.backup_task.cancel()
            with suppress(asyncio.CancelledError):
                await self.backup_task
            self.backup_task = None
        logger.info("⏹️ Backup service stopped")
