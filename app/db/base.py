"""Database engine lifecycle and identifier helpers."""

from __future__ import annotations

from typing import Any
from uuid import UUID
import logging

from sqlalchemy import create_engine
from sqlalchemy import event
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 10
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5


class DatabaseError(RuntimeError):
    """Base error raised while managing the database connection."""


class DatabaseConfigurationError(DatabaseError):
    """Raised when the connection string is missing or unusable."""


class DatabaseConnectionError(DatabaseError):
    """Raised when the database cannot be reached at startup."""


class InvalidIdentifierError(ValueError):
    """Raised when a value cannot be used as a record identifier."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(f"Invalid {field}: {value}")
        self.field = field
        self.value = value


def parse_identifier(value: Any, *, field: str = "id") -> UUID:
    """Parse a record identifier, raising `InvalidIdentifierError` on malformed input."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise InvalidIdentifierError(field, value) from exc


def connect_database(
    url: str,
    *,
    pool_size: int = DEFAULT_POOL_SIZE,
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT_SECONDS,
) -> Engine:
    """Create the engine, verify the database answers, and return it."""
    if not url:
        raise DatabaseConfigurationError("Database URL not found in environment variables")

    try:
        parsed = make_url(url)
    except ArgumentError as exc:
        raise DatabaseConfigurationError("Database URL could not be parsed") from exc

    connect_args: dict[str, Any] = {}
    if parsed.get_backend_name() == "postgresql":
        connect_args["connect_timeout"] = connect_timeout

    engine = create_engine(
        parsed,
        pool_pre_ping=True,
        pool_size=pool_size,
        connect_args=connect_args,
    )
    _attach_pool_listeners(engine)

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        engine.dispose()
        raise DatabaseConnectionError(f"Could not connect to database at {parsed.host or parsed.database}") from exc

    logger.info("Database connected: host=%s", parsed.host or "local")
    logger.info("Database name: %s", parsed.database)
    return engine


def dispose_database(engine: Engine) -> None:
    """Close every pooled connection held by the engine."""
    engine.dispose()
    logger.info("Database connection pool closed")


def _attach_pool_listeners(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(_dbapi_connection: Any, _record: Any) -> None:
        logger.debug("Database connection opened")

    @event.listens_for(engine, "invalidate")
    def _on_invalidate(_dbapi_connection: Any, _record: Any, exception: BaseException | None) -> None:
        if exception is not None:
            logger.error("Database connection error: %s", exception)
        else:
            logger.warning("Database connection invalidated")
