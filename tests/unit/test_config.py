"""Unit tests for environment-driven settings."""

from __future__ import annotations

from collections.abc import Generator

import pytest

from app.core.config import get_settings

_ENV_VARS = (
    "DATABASE_URL",
    "HOST",
    "PORT",
    "ENVIRONMENT",
    "LOG_LEVEL",
    "SHUTDOWN_TIMEOUT_SECONDS",
    "RATE_LIMIT_DEFAULT",
    "DB_POOL_SIZE",
    "DB_CONNECT_TIMEOUT_SECONDS",
    "FORWARDED_ALLOW_IPS",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults() -> None:
    settings = get_settings()

    assert settings.port == 5000
    assert settings.environment == "production"
    assert settings.is_development is False
    assert settings.database_url == ""
    assert settings.shutdown_timeout_seconds == 10.0


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://shop:secret@db:5432/shop")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("ENVIRONMENT", "Development")
    monkeypatch.setenv("SHUTDOWN_TIMEOUT_SECONDS", "2.5")

    settings = get_settings()

    assert settings.port == 8080
    assert settings.is_development is True
    assert settings.shutdown_timeout_seconds == 2.5


def test_unknown_environment_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENVIRONMENT", "staging")

    with pytest.raises(ValueError, match="ENVIRONMENT"):
        get_settings()


def test_safe_for_logging_redacts_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql+psycopg://shop:secret@db:5432/shop")

    logged = get_settings().safe_for_logging()

    assert logged["database_url"] == "<redacted>"
    assert "secret" not in str(logged)
