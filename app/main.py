"""FastAPI application factory for the BlackBox Commerce API."""

from __future__ import annotations

from fastapi import FastAPI
from slowapi import Limiter
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.gzip import GZipMiddleware

from app.api.error_handlers import register_error_handlers
from app.api.health import SERVICE_NAME
from app.api.health import SERVICE_VERSION
from app.api.health import register_health_routes
from app.core.config import Settings
from app.core.config import get_settings

GZIP_MINIMUM_SIZE = 1024


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application: middleware, error boundary, and routes."""
    settings = settings or get_settings()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION)
    app.state.settings = settings
    app.state.limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=GZIP_MINIMUM_SIZE)

    register_error_handlers(app, environment=settings.environment)
    register_health_routes(app)
    return app
