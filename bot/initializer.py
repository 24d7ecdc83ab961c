"""Bot initialization module."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from core.constants import SchedulerDefaults
from core.logger import get_logger

if TYPE_CHECKING:
    from config import Config
    from database.store import Store
    from services import (
        BookingService,
        ConversationStateManager,
        EventBus,
        ExportService,
        ItemService,
        NotificationService,
        UserService,
    )

logger = get_logger(__name__)


class BotInitializer:
    """Handles bot initialization and handler registration."""

    def __init__(
        self,
        config: Config,
        store: Store,
        event_bus: EventBus,
        booking_service: BookingService,
        item_service: ItemService,
        user_service: UserService,
        export_service: ExportService,
        state_manager: ConversationStateManager,
    ):
        self.config = config
        self.store = store
        self.event_bus = event_bus
        self.booking_service = booking_service
        self.item_service = item_service
        self.user_service = user_service
        self.export_service = export_service
        self.state_manager = state_manager
        self.notification_service: Optional[NotificationService] = None

    async def initialize(self):
        """Initialize bot with proper handler registration order."""
        from bot import OptimizedBot
        from bot.callbacks import CallbackDispatcher
        from bot.error_handler import setup_error_handlers
        from bot.handlers import (
            BookingHandlers,
            CallbackRouter,
            CommonHandlers,
            ItemCommandHandlers,
            ManagerBookingHandlers,
            ManagerHandlers,
            ScheduleHandlers,
            setup_fallback_handlers,
        )
        from bot.middleware import setup_middleware
        from bot.storage import StoreStorage
        from services import NotificationService

        bot = OptimizedBot(
            token=self.config.bot_token,
            rate_limit=self.config.bot_send_rate_limit,
            worker_threads=self.config.bot_worker_threads,
            message_queue_size=self.config.message_queue_size,
            storage=StoreStorage(self.store),
        )

        # Notifications go through the send queue, never inline with a handler
        self.notification_service = NotificationService(bot.enqueue_text, self.user_service.manager_ids)
        self.notification_service.subscribe(self.event_bus)
        logger.info("✅ Notification service subscribed")

        items_page = self.config.pagination_size
        bookings_page = self.config.bookings_pagination_size

        common = CommonHandlers(
            self.booking_service,
            self.item_service,
            self.state_manager,
            self.config.managers_contacts,
        )
        booking = BookingHandlers(
            self.booking_service,
            self.item_service,
            self.user_service,
            self.state_manager,
            common,
            page_size=items_page,
        )
        schedule = ScheduleHandlers(
            self.store,
            self.booking_service,
            self.item_service,
            self.state_manager,
            booking,
            common,
            page_size=items_page,
        )
        manager = ManagerHandlers(
            self.booking_service,
            self.item_service,
            self.user_service,
            self.export_service,
            self.notification_service,
            page_size=bookings_page,
        )
        manager_booking = ManagerBookingHandlers(
            self.booking_service,
            self.item_service,
            self.state_manager,
            common,
            page_size=items_page,
        )
        items = ItemCommandHandlers(self.item_service)

        callbacks = CallbackDispatcher()
        for handler in (common, booking, schedule, manager, manager_booking):
            handler.register_callbacks(callbacks)

        # Routers included earlier see updates first: menu buttons and
        # commands win over step input, the fallback goes last
        for handler in (common, booking, schedule, manager, manager_booking, items):
            handler.setup(bot.dispatcher)
        CallbackRouter(callbacks).setup(bot.dispatcher)
        setup_fallback_handlers(bot.dispatcher)
        logger.info("✅ Handlers registered")

        setup_middleware(
            bot.dispatcher,
            self.user_service,
            self.state_manager,
            SchedulerDefaults.UPDATE_TIMEOUT,
        )
        setup_error_handlers(bot.dispatcher)
        logger.info("✅ Middleware configured")

        return bot
