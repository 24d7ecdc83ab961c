"""Service for sending booking notifications to users and managers."""

from __future__ import annotations

from typing import Awaitable, Callable, Iterable, Optional

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup

from bot import callbacks
from bot.callbacks import Tags
from core import get_logger
from core.constants import BookingStatus, EventType
from database.models import Booking
from services.event_bus import Event, EventBus
from utils.validators import format_date

logger = get_logger(__name__)

SendMessage = Callable[..., Awaitable[None]]


def manager_booking_card(booking: Booking) -> str:
    """Text of the card managers receive for a new booking."""
    return (
        "🆕 Новая заявка на бронирование:\n\n"
        f"🏢 Позиция: {booking.item_name}\n"
        f"📅 Дата: {format_date(booking.date)}\n"
        f"👤 Клиент: {booking.user_name}\n"
        f"📱 Телефон: {booking.phone}\n"
        f"💬 Комментарий: {booking.comment or '-'}\n"
        f"🆔 ID заявки: {booking.id}"
    )


def manager_booking_keyboard(booking: Booking) -> InlineKeyboardMarkup:
    """Action buttons attached to the new-booking card."""
    return InlineKeyboardMarkup(inline_keyboard=[
        [
            InlineKeyboardButton(
                text="✅ Подтвердить",
                callback_data=callbacks.booking_action("confirm", booking.id, booking.version),
            ),
            InlineKeyboardButton(
                text="❌ Отклонить",
                callback_data=callbacks.booking_action("reject", booking.id, booking.version),
            ),
        ],
        [
            InlineKeyboardButton(
                text="🔄 Изменить аппарат",
                callback_data=callbacks.booking_action("change_item", booking.id, booking.version),
            ),
            InlineKeyboardButton(
                text="🔄 Предложить другую дату",
                callback_data=callbacks.booking_action("reschedule", booking.id, booking.version),
            ),
        ],
        [
            InlineKeyboardButton(
                text="📞 Позвонить",
                callback_data=callbacks.with_int(Tags.CALL_BOOKING, booking.id),
            ),
        ],
    ])


def reschedule_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text="📋 Создать новую заявку", callback_data=Tags.START_THE_ORDER),
    ]])


class NotificationService:
    """Turns booking events into chat messages.

    Delivery failures are logged and never propagate back into the
    booking flow that published the event.
    """

    def __init__(self, send_message: SendMessage, manager_ids: Iterable[int]) -> None:
        """Initialize notification service.

        Args:
            send_message: Coroutine ``(chat_id, text, reply_markup=None)``
            manager_ids: Chats that receive new-booking cards
        """
        self.send_message = send_message
        self.manager_ids = tuple(manager_ids)

    def subscribe(self, event_bus: EventBus) -> None:
        event_bus.subscribe(EventType.BOOKING_CREATED, self.on_booking_created)
        event_bus.subscribe(EventType.BOOKING_CONFIRMED, self.on_booking_confirmed)
        event_bus.subscribe(EventType.BOOKING_CANCELED, self.on_booking_canceled)
        event_bus.subscribe(EventType.BOOKING_COMPLETED, self.on_booking_completed)
        event_bus.subscribe(EventType.BOOKING_ITEM_CHANGED, self.on_item_changed)

    async def _send(self, chat_id: int, text: str, reply_markup=None, booking_id: Optional[int] = None) -> bool:
        try:
            await self.send_message(chat_id, text, reply_markup=reply_markup)
            return True
        except Exception as e:
            logger.error(
                f"Failed to send notification to {chat_id}: {e}",
                exc_info=True,
                extra={"user_id": chat_id, "booking_id": booking_id},
            )
            return False

    async def notify_managers(self, booking: Booking) -> int:
        """Send the new-booking card to every manager.

        Returns:
            Number of managers reached
        """
        text = manager_booking_card(booking)
        keyboard = manager_booking_keyboard(booking)
        sent = 0
        for manager_id in self.manager_ids:
            if await self._send(manager_id, text, keyboard, booking.id):
                sent += 1
        logger.info(f"New booking #{booking.id} sent to {sent} managers", extra={"booking_id": booking.id})
        return sent

    async def on_booking_created(self, event: Event) -> None:
        booking = Booking.from_dict(event.data()["booking"])
        # Manager-created bookings are born confirmed and need no review
        if booking.status != BookingStatus.PENDING.value:
            return
        await self.notify_managers(booking)

    async def on_booking_confirmed(self, event: Event) -> None:
        booking = Booking.from_dict(event.data()["booking"])
        await self._send(
            booking.user_id,
            f"✅ Ваша заявка на {booking.item_name} {format_date(booking.date)} подтверждена!",
            booking_id=booking.id,
        )

    async def on_booking_canceled(self, event: Event) -> None:
        booking = Booking.from_dict(event.data()["booking"])
        await self._send(
            booking.user_id,
            "❌ К сожалению, ваша заявка была отклонена менеджером.",
            booking_id=booking.id,
        )

    async def on_booking_completed(self, event: Event) -> None:
        booking = Booking.from_dict(event.data()["booking"])
        await self._send(
            booking.user_id,
            f"🏁 Ваша заявка #{booking.id} завершена. Спасибо за использование наших услуг!",
            booking_id=booking.id,
        )

    async def on_item_changed(self, event: Event) -> None:
        booking = Booking.from_dict(event.data()["booking"])
        await self._send(
            booking.user_id,
            f"🔄 В вашей заявке #{booking.id} изменен аппарат на: {booking.item_name}",
            booking_id=booking.id,
        )

    async def notify_reopened(self, booking: Booking) -> None:
        await self._send(
            booking.user_id,
            f"🔄 Ваша заявка #{booking.id} возвращена в работу. Ожидайте подтверждения.",
            booking_id=booking.id,
        )

    async def notify_rescheduled(self, booking: Booking) -> None:
        await self._send(
            booking.user_id,
            f"🔄 Менеджер предложил выбрать другую дату для {booking.item_name}. "
            "Пожалуйста, создайте новую заявку.",
            reply_markup=reschedule_keyboard(),
            booking_id=booking.id,
        )
