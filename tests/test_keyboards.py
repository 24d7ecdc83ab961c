"""Tests for pagination and keyboards."""

from datetime import date

import pytest

from bot.callbacks import Tags
from bot.keyboards.pagination import paginate, render_bookings_page, render_items_page
from database.models import Booking, Item


def make_items(count):
    return [Item(id=n, name=f"Аппарат {n}", total_quantity=1, sort_order=n) for n in range(1, count + 1)]


def make_bookings(count):
    return [
        Booking(id=n, user_id=n, item_id=1, item_name="Кофемашина", date=date(2030, 1, 20), user_name=f"Клиент {n}")
        for n in range(1, count + 1)
    ]


def callback_data(markup):
    return [button.callback_data for row in markup.inline_keyboard for button in row]


class TestPaginate:

    @pytest.mark.parametrize("total, page, size, expected", [
        (0, 0, 5, (0, 0, 0, 0)),
        (12, 0, 5, (0, 0, 5, 3)),
        (12, 2, 5, (2, 10, 12, 3)),
        (12, 9, 5, (2, 10, 12, 3)),
        (12, -3, 5, (0, 0, 5, 3)),
        (10, 1, 5, (1, 5, 10, 2)),
    ])
    def test_bounds(self, total, page, size, expected):
        bounds = paginate(total, page, size)
        assert (bounds.number, bounds.start, bounds.end, bounds.total_pages) == expected

    def test_flags(self):
        first = paginate(12, 0, 5)
        last = paginate(12, 2, 5)
        assert not first.has_prev and first.has_next
        assert last.has_prev and not last.has_next

    def test_bad_page_size_uses_default(self):
        assert paginate(20, 0, 0).end == 8


class TestItemsPage:

    def test_first_page(self):
        text, markup = render_items_page(
            make_items(10), 0, "Выберите аппарат:", Tags.SELECT_ITEM, Tags.ITEMS_PAGE,
            back_callback=Tags.BACK_TO_MAIN, page_size=8,
        )
        assert "Страница 1 из 2" in text
        assert "1. *Аппарат 1*" in text
        data = callback_data(markup)
        assert data[:8] == [f"select_item:{n}" for n in range(1, 9)]
        assert data[8:] == ["items_page:1", "back_to_main"]

    def test_last_page_numbering(self):
        text, markup = render_items_page(make_items(10), 1, "T", Tags.SELECT_ITEM, Tags.ITEMS_PAGE, page_size=8)
        assert "9. *Аппарат 9*" in text
        assert callback_data(markup) == ["select_item:9", "select_item:10", "items_page:0"]

    def test_single_page_has_no_counter(self):
        text, markup = render_items_page(make_items(2), 0, "T", Tags.SELECT_ITEM, Tags.ITEMS_PAGE)
        assert "Страница" not in text
        assert len(markup.inline_keyboard) == 2

    def test_capacity(self):
        text, _ = render_items_page(make_items(1), 0, "T", Tags.SELECT_ITEM, Tags.ITEMS_PAGE, show_capacity=True)
        assert "👥 Всего: 1" in text


class TestBookingsPage:

    def test_page_size_is_capped(self):
        text, markup = render_bookings_page(make_bookings(12), 0, "Заявки", Tags.MANAGER_BOOKINGS_PAGE, page_size=20)
        data = callback_data(markup)
        assert data[:5] == [f"show_booking:{n}" for n in range(1, 6)]
        assert data[5:] == ["manager_bookings_page:1"]
        assert "Страница 1 из 3" in text
        assert "⏳ *Заявка #1*" in text

    def test_custom_describe(self):
        text, _ = render_bookings_page(
            make_bookings(1), 0, "Мои", Tags.MANAGER_BOOKINGS_PAGE, describe=lambda b: f"#{b.id};",
        )
        assert text == "Мои\n\n#1;"
