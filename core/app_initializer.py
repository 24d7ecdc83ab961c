"""Application initialization orchestrator."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Optional

from config import Config, load_config
from core.logger import get_logger
from database import Store, open_store
from services import (
    BackupService,
    BookingService,
    ConversationStateManager,
    EventBus,
    ExcelMirrorSink,
    ExportService,
    ItemService,
    MetricsUpdater,
    ReminderService,
    RetryPolicy,
    SyncWorker,
    UserService,
)
from utils.performance import monitor as default_monitor

logger = get_logger(__name__)


class ApplicationInitializer:
    """Orchestrates application initialization and lifecycle."""

    def __init__(self, config: Optional[Config] = None):
        self.config = config or load_config()
        self.monitor = default_monitor
        self.store: Optional[Store] = None
        self.event_bus = EventBus()
        self.booking_service: Optional[BookingService] = None
        self.item_service: Optional[ItemService] = None
        self.user_service: Optional[UserService] = None
        self.export_service: Optional[ExportService] = None
        self.state_manager: Optional[ConversationStateManager] = None
        self.bot = None
        self.sync_worker: Optional[SyncWorker] = None
        self.reminder_service: Optional[ReminderService] = None
        self.backup_service: Optional[BackupService] = None
        self.metrics_updater: Optional[MetricsUpdater] = None
        self.web_runner = None

    async def initialize(self) -> None:
        """Initialize all application components."""
        await self._init_database()
        self._init_services()

        if self._should_enable_bot():
            await self._init_bot()
        else:
            logger.warning("BOT_TOKEN is not set: running background workers only")

        self._init_sync_worker()
        self._init_backup_service()
        self.metrics_updater = MetricsUpdater(self.store, monitor=self.monitor)
        await self._init_web_server()

    async def run(self) -> None:
        """Run the application."""
        await self.sync_worker.start()
        logger.info("🔄 Sync worker started")

        await self.metrics_updater.start()

        if self.backup_service:
            await self.backup_service.start()
            logger.info("💾 Automatic backup service started")

        if self.reminder_service:
            await self.reminder_service.start()
            logger.info("⏰ Reminder service started")

        bot_task = None
        if self.bot:
            bot_task = asyncio.create_task(self.bot.start())
            logger.info("🤖 Telegram bot started")

        try:
            if bot_task:
                await bot_task
            else:
                while True:
                    await asyncio.sleep(1)
        except (KeyboardInterrupt, asyncio.CancelledError):
            logger.info("Shutting down...")
        finally:
            await self.cleanup()

    async def cleanup(self) -> None:
        """Cleanup resources."""
        with suppress(Exception):
            if self.bot:
                await self.bot.stop()
        with suppress(Exception):
            if self.reminder_service:
                await self.reminder_service.stop()
        with suppress(Exception):
            if self.sync_worker:
                await self.sync_worker.stop()
        with suppress(Exception):
            if self.metrics_updater:
                await self.metrics_updater.stop()
        with suppress(Exception):
            if self.backup_service:
                await self.backup_service.stop()
        with suppress(Exception):
            if self.web_runner:
                await self.web_runner.cleanup()
        with suppress(Exception):
            if self.store:
                await self.store.close()
        logger.info("👋 Shutdown complete")

    async def _init_database(self) -> None:
        """Open the store and apply migrations."""
        self.store = await open_store(
            self.config.database_path,
            pool_size=self.config.db_pool_size,
            busy_timeout_ms=self.config.db_busy_timeout,
        )
        logger.info("✅ Database initialized")

    def _init_services(self) -> None:
        self.booking_service = BookingService(
            self.store,
            self.event_bus,
            max_booking_days=self.config.max_booking_days,
            min_booking_advance_hours=self.config.min_booking_advance_hours,
            monitor=self.monitor,
        )
        self.item_service = ItemService(self.store)
        self.user_service = UserService(
            self.store,
            managers=self.config.managers,
            blacklist=self.config.blacklist,
        )
        self.export_service = ExportService(self.store, self.config.exports_path)
        self.state_manager = ConversationStateManager(
            self.store,
            rate_limit_messages=self.config.rate_limit_messages,
            rate_limit_window=self.config.rate_limit_window,
        )
        logger.info("✅ Services initialized")

    def _should_enable_bot(self) -> bool:
        """Check if bot should be enabled."""
        return bool(self.config.bot_token) and self.config.bot_token != "your_bot_token_here"

    async def _init_bot(self) -> None:
        """Initialize Telegram bot."""
        from bot.initializer import BotInitializer

        bot_init = BotInitializer(
            self.config,
            self.store,
            self.event_bus,
            self.booking_service,
            self.item_service,
            self.user_service,
            self.export_service,
            self.state_manager,
        )
        self.bot = await bot_init.initialize()
        self.reminder_service = ReminderService(
            self.store,
            self.bot.enqueue_text,
            reminder_time=self.config.reminder_hour_minute,
        )
        logger.info("✅ Bot initialized successfully")

    def _init_sync_worker(self) -> None:
        self.sync_worker = SyncWorker(
            self.store,
            ExcelMirrorSink(self.config.mirror_path),
            retry_policy=RetryPolicy(
                max_retries=self.config.sync_max_retries,
                base_delay=self.config.sync_base_delay,
            ),
            poll_interval=self.config.sync_poll_interval,
            batch_size=self.config.sync_batch_size,
            monitor=self.monitor,
        )

    def _init_backup_service(self) -> None:
        """Initialize backup service."""
        if not self.config.backup_enabled:
            logger.info("Backups disabled")
            return
        self.backup_service = BackupService(
            db_path=self.config.database_path,
            backup_dir=self.config.backup_folder,
            interval_hours=self.config.backup_interval_hours,
            retention_days=self.config.backup_retention_days,
        )

    async def _init_web_server(self) -> None:
        """Start the health, metrics and availability API endpoints."""
        if not self.config.monitoring_enabled:
            logger.info("Monitoring server disabled")
            return
        from web import ApiKeyAuth, create_app, start_web_server

        api_auth = ApiKeyAuth(self.config.api_keys, rate_limit=self.config.api_rate_limit)
        if not api_auth.api_keys:
            logger.info("API_KEYS is empty; availability API calls will be refused")
        app = create_app(self.store, self.monitor, api_auth)
        self.web_runner = await start_web_server(
            app, self.config.monitoring_host, self.config.monitoring_port
        )
