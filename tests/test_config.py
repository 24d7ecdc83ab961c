"""Tests for configuration loading."""

import pytest

from config import load_config, parse_reminder_time
from core.exceptions import ConfigurationError


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "BOT_TOKEN", "MANAGERS", "BLACKLIST", "MANAGERS_CONTACTS", "REMINDER_TIME",
        "MAX_BOOKING_DAYS", "MIN_BOOKING_ADVANCE_HOURS", "PAGINATION_SIZE",
        "BACKUP_ENABLED", "MONITORING_PORT", "LOG_LEVEL", "API_KEYS", "API_RATE_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    config = load_config()
    assert config.managers == ()
    assert config.pagination_size == 8
    assert config.bookings_pagination_size == 5
    assert config.reminder_hour_minute == (9, 0)
    assert config.backup_enabled is True
    assert config.api_keys == ()
    assert config.api_rate_limit == 20


def test_lists_and_flags(clean_env):
    clean_env.setenv("MANAGERS", "1, 2,3")
    clean_env.setenv("BLACKLIST", "99")
    clean_env.setenv("MANAGERS_CONTACTS", "@anna; +7 999 000-00-00 ;")
    clean_env.setenv("BACKUP_ENABLED", "no")
    clean_env.setenv("MONITORING_PORT", "9100")
    clean_env.setenv("LOG_LEVEL", "debug")

    config = load_config()
    assert config.managers == (1, 2, 3)
    assert config.blacklist == (99,)
    assert config.managers_contacts == ("@anna", "+7 999 000-00-00")
    assert config.backup_enabled is False
    assert config.monitoring_port == 9100
    assert config.log_level == "DEBUG"


def test_bad_integer_falls_back(clean_env):
    clean_env.setenv("PAGINATION_SIZE", "many")
    assert load_config().pagination_size == 8


def test_bad_manager_list(clean_env):
    clean_env.setenv("MANAGERS", "1,anna")
    with pytest.raises(ConfigurationError):
        load_config()


def test_bad_reminder_time(clean_env):
    clean_env.setenv("REMINDER_TIME", "25:00")
    with pytest.raises(ConfigurationError):
        load_config()


def test_negative_horizon(clean_env):
    clean_env.setenv("MAX_BOOKING_DAYS", "-1")
    with pytest.raises(ConfigurationError):
        load_config()


@pytest.mark.parametrize("value, expected", [("09:00", (9, 0)), (" 18:45 ", (18, 45)), ("0:5", (0, 5))])
def test_parse_reminder_time(value, expected):
    assert parse_reminder_time(value) == expected


@pytest.mark.parametrize("value", ["", "9", "9:60", "aa:bb", "1:2:3"])
def test_parse_reminder_time_invalid(value):
    with pytest.raises(ConfigurationError):
        parse_reminder_time(value)


def test_api_keys(clean_env):
    clean_env.setenv("API_KEYS", "crm-key, ,report-key")
    clean_env.setenv("API_RATE_LIMIT", "5")

    config = load_config()
    assert config.api_keys == ("crm-key", "report-key")
    assert config.api_rate_limit == 5


def test_zero_api_rate_limit(clean_env):
    clean_env.setenv("API_RATE_LIMIT", "0")
    with pytest.raises(ConfigurationError):
        load_config()
