"""Error envelope schemas shared across API handlers."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class ErrorDetail(BaseModel):
    """Single field-level validation issue."""

    field: str
    message: str


class ErrorObject(BaseModel):
    """Machine-readable part of the error envelope."""

    code: str
    timestamp: str
    name: str | None = None
    suggestions: list[str] | None = None


class ErrorResponse(BaseModel):
    """Top-level API error response envelope."""

    success: Literal[False] = False
    message: str
    error: ErrorObject
    stack: str | None = None
    errors: list[ErrorDetail] | None = None
