"""Reply keyboard layouts for the Telegram bot"""

from aiogram.types import KeyboardButton, ReplyKeyboardMarkup

# Button captions shared by keyboards and handler filters
BTN_CREATE_BOOKING = "📋 СОЗДАТЬ ЗАЯВКУ"
BTN_SCHEDULE = "📅 Посмотреть расписание"
BTN_ASSORTMENT = "💼 Ассортимент"
BTN_MY_BOOKINGS = "📊 Мои заявки"
BTN_CONTACTS = "📞 Контакты менеджеров"

BTN_ALL_BOOKINGS = "👨‍💼 Все заявки"
BTN_MANAGER_CREATE = "➕ Создать заявку (Менеджер)"
BTN_SYNC_BOOKINGS = "🔄 Синхронизировать бронирования"
BTN_SYNC_SCHEDULE = "📅 Синхронизировать расписание"
BTN_EXPORT_SCHEDULE = "📤 Экспорт расписания"

BTN_CANCEL = "❌ Отмена"
BTN_BACK = "⬅️ Назад"
BTN_SEND_CONTACT = "📱 Отправить номер телефона из вашего контакта в телеграмм"
BTN_CONFIRM_CREATE = "✅ Подтвердить создание"
BTN_BOOK_THIS_ITEM = "📋 СОЗДАТЬ ЗАЯВКУ НА ЭТОТ АППАРАТ"
BTN_SCHEDULE_30_DAYS = "📅 30 дней"
BTN_SPECIFIC_DATE = "🗓 Выбрать дату"
BTN_BACK_TO_ITEMS = "⬅️ Назад к выбору аппарата"
BTN_BACK_TO_MENU = "⬅️ Назад в меню"

RESET_WORDS = ("сброс", "reset")


def _markup(rows) -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[[KeyboardButton(text=text) for text in row] for row in rows],
        resize_keyboard=True,
    )


def get_main_menu_keyboard(is_manager: bool = False) -> ReplyKeyboardMarkup:
    """Main menu; managers only see the staff buttons"""
    if is_manager:
        return _markup([
            [BTN_ALL_BOOKINGS],
            [BTN_MANAGER_CREATE],
            [BTN_SYNC_BOOKINGS, BTN_SYNC_SCHEDULE],
            [BTN_EXPORT_SCHEDULE],
        ])
    return _markup([
        [BTN_CREATE_BOOKING],
        [BTN_SCHEDULE, BTN_ASSORTMENT],
        [BTN_MY_BOOKINGS, BTN_CONTACTS],
    ])


def get_name_input_keyboard() -> ReplyKeyboardMarkup:
    return _markup([[BTN_CONTACTS], [BTN_CANCEL, BTN_BACK]])


def get_phone_input_keyboard() -> ReplyKeyboardMarkup:
    """Phone step with a button that shares the Telegram contact"""
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text=BTN_SEND_CONTACT, request_contact=True)],
            [KeyboardButton(text=BTN_CANCEL), KeyboardButton(text=BTN_BACK)],
        ],
        resize_keyboard=True,
    )


def get_step_keyboard() -> ReplyKeyboardMarkup:
    """Cancel/back pair used by the free-text steps"""
    return _markup([[BTN_CANCEL, BTN_BACK]])


def get_schedule_keyboard() -> ReplyKeyboardMarkup:
    return _markup([
        [BTN_BOOK_THIS_ITEM],
        [BTN_SCHEDULE_30_DAYS, BTN_SPECIFIC_DATE],
        [BTN_BACK_TO_ITEMS],
        [BTN_BACK_TO_MENU],
    ])


def get_manager_confirm_keyboard() -> ReplyKeyboardMarkup:
    return _markup([[BTN_CONFIRM_CREATE, BTN_CANCEL]])
