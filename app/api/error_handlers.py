"""Error boundary: classify, log, and render every failure reaching FastAPI."""

from __future__ import annotations

from typing import Any
import logging

import jwt
from fastapi import FastAPI
from fastapi import Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import DBAPIError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.not_found import method_not_allowed_error
from app.api.not_found import not_found_error
from app.core.clock import utc_timestamp
from app.core.config import DEVELOPMENT
from app.core.errors import AppError
from app.core.errors import ClassifiedError
from app.core.errors import build_error_response
from app.core.errors import classify_error
from app.db.base import InvalidIdentifierError

logger = logging.getLogger(__name__)

# Failure shapes handled inside the exception middleware rather than the
# server-error middleware, which re-raises after responding.
CLASSIFIED_EXCEPTION_TYPES: tuple[type[BaseException], ...] = (
    AppError,
    InvalidIdentifierError,
    ValidationError,
    RequestValidationError,
    DBAPIError,
    jwt.InvalidTokenError,
)


def _request_context(request: Request) -> dict[str, Any]:
    return {
        "url": str(request.url.path) + (f"?{request.url.query}" if request.url.query else ""),
        "method": request.method,
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def log_classified_error(request: Request, error: ClassifiedError, *, environment: str) -> None:
    """Write one log line per classified error, in every deployment mode."""
    record = {
        "timestamp": utc_timestamp(),
        "message": error.message,
        "status_code": error.status_code,
        "code": error.code,
        **_request_context(request),
    }

    exc_info = None
    if error.cause is not None and (environment == DEVELOPMENT or not error.is_operational):
        exc_info = (type(error.cause), error.cause, error.cause.__traceback__)

    if error.is_operational:
        logger.warning("Request failed: %s", record, exc_info=exc_info)
    else:
        logger.error("Unhandled error: %s", record, exc_info=exc_info)


def register_error_handlers(app: FastAPI, *, environment: str) -> None:
    """Attach the error boundary to a FastAPI app instance."""

    def respond(request: Request, error: ClassifiedError, headers: dict[str, str] | None = None) -> JSONResponse:
        log_classified_error(request, error, environment=environment)
        return build_error_response(error, environment, headers=headers)

    async def classified_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        return respond(request, classify_error(exc))

    async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        if not isinstance(exc, StarletteHTTPException):
            return respond(request, classify_error(exc))

        # Router-generated 404/405 carry the default status phrase as detail.
        headers = dict(exc.headers) if exc.headers else None
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            return respond(request, not_found_error(request), headers)
        if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED and exc.detail == "Method Not Allowed":
            error = method_not_allowed_error(request.method, request.url.path)
            return respond(request, error, headers)
        return respond(request, classify_error(exc), headers)

    def rate_limit_exceeded_handler(request: Request, exc: Exception) -> JSONResponse:
        # slowapi's middleware calls this synchronously.
        return respond(request, classify_error(exc))

    for exc_type in CLASSIFIED_EXCEPTION_TYPES:
        app.add_exception_handler(exc_type, classified_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, classified_exception_handler)
