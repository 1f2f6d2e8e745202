"""Tests for environment configuration."""

import pytest

from wellness_workers.config import Config

_ENV_VARS = (
    "DATABASE_URL",
    "WELLNESS_LISTEN_DATABASE_URL",
    "WELLNESS_NOTIFY_CHANNEL",
    "WELLNESS_DEBOUNCE_SECONDS",
    "WELLNESS_PERIOD_DAYS",
    "WELLNESS_HEALTH_PORT",
    "WELLNESS_LOG_FORMAT",
    "WELLNESS_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_requires_database_url():
    with pytest.raises(RuntimeError, match="DATABASE_URL must be set"):
        Config.from_env()


def test_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/wellness")
    config = Config.from_env()
    assert config.listen_database_url == "postgresql://db/wellness"
    assert config.notify_channel == "wellness_records"
    assert config.debounce_seconds == 2.0
    assert config.period_days == 7
    assert config.health_port == 8081
    assert config.log_format == "json"
    assert config.log_level == "INFO"


def test_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/wellness")
    monkeypatch.setenv("WELLNESS_LISTEN_DATABASE_URL", "postgresql://direct/wellness")
    monkeypatch.setenv("WELLNESS_DEBOUNCE_SECONDS", "0.5")
    monkeypatch.setenv("WELLNESS_PERIOD_DAYS", "30")
    monkeypatch.setenv("WELLNESS_LOG_FORMAT", "text")
    monkeypatch.setenv("WELLNESS_LOG_LEVEL", "debug")
    config = Config.from_env()
    assert config.listen_database_url == "postgresql://direct/wellness"
    assert config.debounce_seconds == 0.5
    assert config.period_days == 30
    assert config.log_format == "text"
    assert config.log_level == "debug"
