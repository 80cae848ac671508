"""Application configuration helpers."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 5000
DEFAULT_ENVIRONMENT = "production"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_SHUTDOWN_TIMEOUT_SECONDS = 10.0
DEFAULT_RATE_LIMIT = "100/minute"
DEFAULT_DB_POOL_SIZE = 10
DEFAULT_DB_CONNECT_TIMEOUT_SECONDS = 5
DEFAULT_FORWARDED_ALLOW_IPS = "127.0.0.1"

DEVELOPMENT = "development"
PRODUCTION = "production"
ENVIRONMENTS = frozenset({DEVELOPMENT, PRODUCTION})


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    return float(raw)


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def _get_environment() -> str:
    environment = os.getenv("ENVIRONMENT", DEFAULT_ENVIRONMENT).strip().lower()
    if environment not in ENVIRONMENTS:
        raise ValueError(f"ENVIRONMENT must be one of {sorted(ENVIRONMENTS)}, got {environment!r}")
    return environment


def redact_secret(secret: str) -> str:
    """Return a non-recoverable placeholder for sensitive values."""
    if not secret:
        return "<empty>"
    return "<redacted>"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API process."""

    database_url: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    environment: str = DEFAULT_ENVIRONMENT
    log_level: str = DEFAULT_LOG_LEVEL
    shutdown_timeout_seconds: float = DEFAULT_SHUTDOWN_TIMEOUT_SECONDS
    rate_limit_default: str = DEFAULT_RATE_LIMIT
    db_pool_size: int = DEFAULT_DB_POOL_SIZE
    db_connect_timeout_seconds: int = DEFAULT_DB_CONNECT_TIMEOUT_SECONDS
    forwarded_allow_ips: str = DEFAULT_FORWARDED_ALLOW_IPS

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    def safe_for_logging(self) -> dict[str, str | int | float]:
        """Return settings safe for logs."""
        return {
            "database_url": redact_secret(self.database_url),
            "host": self.host,
            "port": self.port,
            "environment": self.environment,
            "log_level": self.log_level,
            "shutdown_timeout_seconds": self.shutdown_timeout_seconds,
            "rate_limit_default": self.rate_limit_default,
            "db_pool_size": self.db_pool_size,
            "db_connect_timeout_seconds": self.db_connect_timeout_seconds,
            "forwarded_allow_ips": self.forwarded_allow_ips,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load API settings from the environment."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", ""),
        host=os.getenv("HOST", DEFAULT_HOST),
        port=_get_int_env("PORT", DEFAULT_PORT),
        environment=_get_environment(),
        log_level=os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL),
        shutdown_timeout_seconds=_get_float_env("SHUTDOWN_TIMEOUT_SECONDS", DEFAULT_SHUTDOWN_TIMEOUT_SECONDS),
        rate_limit_default=os.getenv("RATE_LIMIT_DEFAULT", DEFAULT_RATE_LIMIT),
        db_pool_size=_get_int_env("DB_POOL_SIZE", DEFAULT_DB_POOL_SIZE),
        db_connect_timeout_seconds=_get_int_env("DB_CONNECT_TIMEOUT_SECONDS", DEFAULT_DB_CONNECT_TIMEOUT_SECONDS),
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", DEFAULT_FORWARDED_ALLOW_IPS),
    )
