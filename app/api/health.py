"""Liveness and banner routes."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi import Request

from app.core.clock import process_uptime
from app.core.clock import utc_timestamp
from app.schemas.health import ApiHealthStatus
from app.schemas.health import HealthStatus
from app.schemas.health import ServiceBanner

SERVICE_NAME = "BlackBox Commerce API"
SERVICE_VERSION = "1.0.0"
API_PREFIX = "/api/v1"


def health(request: Request) -> HealthStatus:
    """Process liveness probe, independent of downstream dependencies."""
    return HealthStatus(
        status="OK",
        timeStamp=utc_timestamp(),
        uptime=process_uptime(),
        environment=request.app.state.settings.environment,
    )


def root() -> ServiceBanner:
    """Describe the service and where to find docs and health."""
    return ServiceBanner(
        message=SERVICE_NAME,
        version=SERVICE_VERSION,
        documentation="/docs",
        health="/health",
        timeStamp=utc_timestamp(),
    )


def api_health() -> ApiHealthStatus:
    return ApiHealthStatus(success=True, message="API is running", timeStamp=utc_timestamp())


def register_health_routes(app: FastAPI) -> None:
    """Add the liveness and banner routes to the application."""
    # Routes live on the app itself so the rate limiter can resolve their endpoints.
    app.add_api_route("/health", health, methods=["GET"], response_model=HealthStatus, tags=["health"])
    app.add_api_route("/", root, methods=["GET"], response_model=ServiceBanner, tags=["health"])
    app.add_api_route(
        f"{API_PREFIX}/health",
        api_health,
        methods=["GET"],
        response_model=ApiHealthStatus,
        tags=["health"],
    )
