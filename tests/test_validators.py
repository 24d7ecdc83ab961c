"""Tests for input validation helpers."""

from datetime import date

import pytest

from core.exceptions import ValidationError
from utils.validators import (
    date_range,
    format_date,
    format_phone,
    normalize_phone,
    parse_date,
    parse_trailing_int,
    sanitize_input,
    validate_name,
    validate_phone,
)


class TestSanitizeInput:

    def test_escapes_markup(self):
        assert sanitize_input('<b>"Hi"</b>') == "&lt;b&gt;&quot;Hi&quot;&lt;/b&gt;"

    def test_escapes_single_quote(self):
        assert sanitize_input("O'Neil") == "O&#39;Neil"

    def test_strips_control_chars_and_collapses_whitespace(self):
        assert sanitize_input("  Иван\x00\x07   Петров \n\t ") == "Иван Петров"

    def test_truncates(self):
        assert len(sanitize_input("a" * 600)) == 500
        assert sanitize_input("abcdef", max_length=3) == "abc"

    def test_empty(self):
        assert sanitize_input(None) == ""
        assert sanitize_input("") == ""

    def test_stable_on_repeat(self):
        once = sanitize_input("<tag> & 'x'")
        assert sanitize_input(once) == once


class TestValidateName:

    def test_accepts_normal_name(self):
        assert validate_name("  Иван  Петров ") == "Иван Петров"

    @pytest.mark.parametrize("value", ["", "A", None, "x" * 151])
    def test_rejects_bad_length(self, value):
        with pytest.raises(ValidationError):
            validate_name(value)


class TestPhone:

    @pytest.mark.parametrize("value, expected", [
        ("+7 (999) 123-45-67", "79991234567"),
        ("89991234567", "79991234567"),
        ("9991234567", "79991234567"),
        ("7 999 123 45 67", "79991234567"),
        ("12345", ""),
        ("69991234567", ""),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, value, expected):
        assert normalize_phone(value) == expected

    def test_validate(self):
        assert validate_phone("8 (999) 123-45-67")
        assert not validate_phone("abc")

    def test_format(self):
        assert format_phone("89991234567") == "+7 (999) 123-45-67"

    def test_format_leaves_invalid_unchanged(self):
        assert format_phone("123") == "123"


class TestDates:

    def test_parse_date(self):
        assert parse_date(" 05.03.2030 ") == date(2030, 3, 5)

    @pytest.mark.parametrize("value", ["2030-03-05", "31.02.2030", "", None, "завтра"])
    def test_parse_date_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_date(value)

    def test_format_date(self):
        assert format_date(date(2030, 1, 2)) == "02.01.2030"

    def test_date_range_inclusive(self):
        days = date_range(date(2030, 1, 30), date(2030, 2, 2))
        assert days == [date(2030, 1, 30), date(2030, 1, 31), date(2030, 2, 1), date(2030, 2, 2)]

    def test_date_range_single_day(self):
        assert date_range(date(2030, 1, 1), date(2030, 1, 1)) == [date(2030, 1, 1)]

    def test_date_range_end_before_start(self):
        with pytest.raises(ValidationError):
            date_range(date(2030, 1, 5), date(2030, 1, 4))

    def test_date_range_limit(self):
        assert len(date_range(date(2030, 1, 1), date(2030, 1, 31))) == 31
        with pytest.raises(ValidationError):
            date_range(date(2030, 1, 1), date(2030, 2, 1))


class TestParseTrailingInt:

    def test_multiword_name(self):
        assert parse_trailing_int("Кофемашина Pro 3") == ("Кофемашина Pro", 3)

    @pytest.mark.parametrize("value", ["", "Кофемашина", "Кофемашина три"])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_trailing_int(value)
