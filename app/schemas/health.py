"""Pydantic schemas for liveness and banner payloads."""

from __future__ import annotations

from pydantic import BaseModel


class HealthStatus(BaseModel):
    """Process liveness payload served at `/health`."""

    status: str
    timeStamp: str
    uptime: float
    environment: str


class ApiHealthStatus(BaseModel):
    """Liveness payload served under the versioned API prefix."""

    success: bool
    message: str
    timeStamp: str


class ServiceBanner(BaseModel):
    """Root endpoint payload describing the service."""

    message: str
    version: str
    documentation: str
    health: str
    timeStamp: str
