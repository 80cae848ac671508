"""Process entrypoint: bootstrap, connect, bind, and serve under supervision."""

from __future__ import annotations

import asyncio
import errno
import logging
import math
import socket
import sys

import uvicorn
from dotenv import find_dotenv
from dotenv import load_dotenv

from app.core.config import Settings
from app.core.config import get_settings
from app.core.lifecycle import EXIT_FAILURE
from app.core.lifecycle import ProcessSupervisor
from app.core.lifecycle import SupervisedServer
from app.core.logging import configure_logging
from app.db.base import DatabaseError
from app.db.base import connect_database
from app.db.base import dispose_database
from app.main import create_app

logger = logging.getLogger(__name__)


class PortBindingError(OSError):
    """Raised when the listening socket cannot be bound."""


def bind_socket(host: str, port: int) -> socket.socket:
    """Bind the listening socket up front so bind failures surface before serving."""
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((host, port))
    except OSError as exc:
        sock.close()
        if exc.errno == errno.EADDRINUSE:
            raise PortBindingError(exc.errno, f"Port {port} is already in use") from exc
        if exc.errno == errno.EACCES:
            raise PortBindingError(exc.errno, f"Port {port} requires elevated privileges") from exc
        raise
    sock.set_inheritable(True)
    return sock


def build_server(app: object, settings: Settings) -> SupervisedServer:
    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips,
        timeout_graceful_shutdown=math.ceil(settings.shutdown_timeout_seconds),
        log_config=None,
    )
    return SupervisedServer(config)


def _log_banner(settings: Settings) -> None:
    base_url = f"http://localhost:{settings.port}"
    logger.info("Server running on port %d", settings.port)
    logger.info("API Documentation: %s/docs", base_url)
    logger.info("Health Check: %s/health", base_url)
    logger.info("Environment: %s", settings.environment)


def load_settings(env_file: str | None = None) -> Settings:
    """Apply `.env` (from the working directory unless given) and read fresh settings."""
    load_dotenv(env_file or find_dotenv(usecwd=True))
    get_settings.cache_clear()
    return get_settings()


def main() -> None:
    """Start the API server; exits 0 after graceful shutdown, 1 on any failure."""
    try:
        settings = load_settings()
    except ValueError as exc:
        configure_logging()
        logger.error("Failed to start server: %s", exc)
        sys.exit(EXIT_FAILURE)

    configure_logging(settings.log_level)
    logger.debug("Loaded settings: %s", settings.safe_for_logging())

    try:
        engine = connect_database(
            settings.database_url,
            pool_size=settings.db_pool_size,
            connect_timeout=settings.db_connect_timeout_seconds,
        )
    except DatabaseError as exc:
        logger.error("Failed to start server: %s", exc, exc_info=exc.__cause__ is not None)
        sys.exit(EXIT_FAILURE)

    try:
        sock = bind_socket(settings.host, settings.port)
    except OSError as exc:
        logger.error("Failed to start server: %s", exc.strerror or exc)
        dispose_database(engine)
        sys.exit(EXIT_FAILURE)

    app = create_app(settings)
    app.state.engine = engine

    supervisor = ProcessSupervisor(
        build_server(app, settings),
        shutdown_timeout=settings.shutdown_timeout_seconds,
        on_stopped=[lambda: dispose_database(engine)],
    )
    _log_banner(settings)
    asyncio.run(supervisor.run(sockets=[sock]))


if __name__ == "__main__":
    main()
