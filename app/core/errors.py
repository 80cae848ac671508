"""Error taxonomy, failure classification, and error envelope rendering."""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Iterable
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from enum import Enum
from http import HTTPStatus
from typing import Any
import re
import traceback

import jwt
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import DataError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.clock import utc_timestamp
from app.core.config import DEVELOPMENT
from app.db.base import InvalidIdentifierError
from app.schemas.error import ErrorDetail
from app.schemas.error import ErrorObject
from app.schemas.error import ErrorResponse

GENERIC_INTERNAL_MESSAGE = "Internal server error. Please try again later."
INTERNAL_SERVER_ERROR_CODE = "INTERNAL_SERVER_ERROR"

INVALID_TOKEN_MESSAGE = "Invalid token. Please log in again."
EXPIRED_TOKEN_MESSAGE = "Your token has expired. Please log in again."

# PostgreSQL SQLSTATE values raised through SQLAlchemy's DBAPI wrappers.
SQLSTATE_INVALID_TEXT_REPRESENTATION = "22P02"
SQLSTATE_UNIQUE_VIOLATION = "23505"

_INVALID_TEXT_PATTERN = re.compile(r'invalid input syntax for type (?P<field>[\w ]+): "(?P<value>.*?)"')
_DUPLICATE_KEY_PATTERN = re.compile(r"Key \((?P<field>.+?)\)=\((?P<value>.*)\) already exists")
_LOCATION_PREFIXES = frozenset({"body", "query", "path", "header", "cookie"})


class ErrorKind(Enum):
    """Closed set of error variants with their HTTP status and default message."""

    BAD_REQUEST = (400, "Bad request")
    UNAUTHORIZED = (401, "Authentication failed")
    FORBIDDEN = (403, "You are not authorized to perform this action")
    NOT_FOUND = (404, "Resource not found")
    METHOD_NOT_ALLOWED = (405, "Method not allowed")
    CONFLICT = (409, "Resource already exists")
    VALIDATION = (422, "Validation failed")
    RATE_LIMITED = (429, "Too many requests from this IP, please try again later.")
    INTERNAL = (500, "Internal server error")

    def __init__(self, status_code: int, default_message: str) -> None:
        self.status_code = status_code
        self.default_message = default_message


def error_code(status_code: int, message: str) -> str:
    """Derive the symbolic error code sent to clients."""
    if status_code == 404:
        if "find" in message:
            return "ROUTE_NOT_FOUND"
        return "RESOURCE_NOT_FOUND"

    codes = {
        400: "BAD_REQUEST",
        401: "UNAUTHORIZED",
        403: "FORBIDDEN",
        409: "CONFLICT",
        422: "VALIDATION_ERROR",
        429: "RATE_LIMIT_EXCEEDED",
    }
    return codes.get(status_code, "SERVER_ERROR")


@dataclass(frozen=True)
class FieldError:
    """One field-level problem attached to a validation failure."""

    field: str
    message: str


@dataclass(frozen=True)
class ClassifiedError:
    """Normalized representation of a failure, ready to be rendered once."""

    status_code: int
    message: str
    code: str
    is_operational: bool = True
    name: str = "AppError"
    cause: BaseException | None = field(default=None, compare=False, repr=False)
    errors: tuple[FieldError, ...] = ()
    suggestions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.status_code, bool) or not isinstance(self.status_code, int):
            raise ValueError(f"status_code must be an integer, got {self.status_code!r}")
        if not 400 <= self.status_code <= 599:
            raise ValueError(f"status_code must be within 400-599, got {self.status_code}")

    @classmethod
    def create(
        cls,
        status_code: int,
        message: str,
        *,
        is_operational: bool = True,
        cause: BaseException | None = None,
        name: str | None = None,
        errors: Iterable[FieldError] = (),
        suggestions: Iterable[str] = (),
    ) -> ClassifiedError:
        if name is None:
            name = type(cause).__name__ if cause is not None else "AppError"
        return cls(
            status_code=status_code,
            message=message,
            code=error_code(status_code, message),
            is_operational=is_operational,
            name=name,
            cause=cause,
            errors=tuple(errors),
            suggestions=tuple(suggestions),
        )

    @classmethod
    def from_kind(cls, kind: ErrorKind, message: str | None = None, **kwargs: Any) -> ClassifiedError:
        return cls.create(kind.status_code, message or kind.default_message, **kwargs)

    @property
    def stack(self) -> str:
        """Formatted traceback of the cause, or a one-line summary without one."""
        if self.cause is None:
            return f"{self.name}: {self.message}"
        lines = traceback.format_exception(type(self.cause), self.cause, self.cause.__traceback__)
        return "".join(lines).rstrip()


class AppError(Exception):
    """Expected, client-safe failure raised by lower layers."""

    def __init__(
        self,
        kind: ErrorKind = ErrorKind.INTERNAL,
        message: str | None = None,
        *,
        errors: Iterable[FieldError] = (),
    ) -> None:
        self.kind = kind
        self.classified = ClassifiedError.from_kind(kind, message, name=type(self).__name__, errors=errors)
        super().__init__(self.classified.message)

    @property
    def status_code(self) -> int:
        return self.classified.status_code

    @property
    def message(self) -> str:
        return self.classified.message

    @classmethod
    def bad_request(cls, message: str | None = None) -> AppError:
        return cls(ErrorKind.BAD_REQUEST, message)

    @classmethod
    def unauthorized(cls, message: str | None = None) -> AppError:
        return cls(ErrorKind.UNAUTHORIZED, message)

    @classmethod
    def forbidden(cls, message: str | None = None) -> AppError:
        return cls(ErrorKind.FORBIDDEN, message)

    @classmethod
    def not_found(cls, resource: str = "Resource") -> AppError:
        return cls(ErrorKind.NOT_FOUND, f"{resource} not found")

    @classmethod
    def conflict(cls, message: str | None = None) -> AppError:
        return cls(ErrorKind.CONFLICT, message)

    @classmethod
    def rate_limited(cls, message: str | None = None) -> AppError:
        return cls(ErrorKind.RATE_LIMITED, message)

    @classmethod
    def internal(cls, message: str | None = None) -> AppError:
        return cls(ErrorKind.INTERNAL, message)


def _driver_sqlstate(exc: BaseException) -> str | None:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    # psycopg exposes `sqlstate`, psycopg2 exposes `pgcode`.
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def _driver_detail(exc: BaseException) -> str:
    orig = getattr(exc, "orig", None)
    diag = getattr(orig, "diag", None)
    detail = getattr(diag, "message_detail", None)
    if detail:
        return str(detail)
    return str(orig if orig is not None else exc)


def _format_location(location: Sequence[Any]) -> str:
    filtered = [str(part) for part in location if part not in _LOCATION_PREFIXES]
    if filtered:
        return ".".join(filtered)
    if not location:
        return "request"
    return str(location[0])


def format_validation_errors(issues: Iterable[dict[str, Any]]) -> list[FieldError]:
    """Normalize pydantic/FastAPI validation issues to field errors."""
    return [
        FieldError(
            field=_format_location(issue.get("loc", ())) or "unknown",
            message=str(issue.get("msg") or "Invalid value"),
        )
        for issue in issues
    ]


def _classify_invalid_identifier(exc: BaseException) -> ClassifiedError | None:
    if isinstance(exc, InvalidIdentifierError):
        return ClassifiedError.from_kind(ErrorKind.BAD_REQUEST, f"Invalid {exc.field}: {exc.value}", cause=exc)

    if isinstance(exc, DataError) and _driver_sqlstate(exc) == SQLSTATE_INVALID_TEXT_REPRESENTATION:
        match = _INVALID_TEXT_PATTERN.search(str(exc.orig))
        if match is None:
            return ClassifiedError.from_kind(ErrorKind.BAD_REQUEST, "Invalid identifier value", cause=exc)
        value = match.group("value")
        field_name = _bound_parameter_name(exc.params, value) or match.group("field")
        return ClassifiedError.from_kind(ErrorKind.BAD_REQUEST, f"Invalid {field_name}: {value}", cause=exc)
    return None


def _bound_parameter_name(params: Any, value: str) -> str | None:
    # Postgres names the column type, not the column; recover the name from the bound parameters.
    if not isinstance(params, dict):
        return None
    names = [name for name, bound in params.items() if str(bound) == value]
    if len(names) != 1:
        return None
    return str(names[0])


def _classify_schema_validation(exc: BaseException) -> ClassifiedError | None:
    if not isinstance(exc, (ValidationError, RequestValidationError)):
        return None

    field_errors = format_validation_errors(exc.errors())
    message = "Invalid input data."
    if field_errors:
        message = f"Invalid input data. {'. '.join(item.message for item in field_errors)}"
    return ClassifiedError.from_kind(ErrorKind.BAD_REQUEST, message, cause=exc, errors=field_errors)


def _classify_duplicate_key(exc: BaseException) -> ClassifiedError | None:
    if not isinstance(exc, IntegrityError) or _driver_sqlstate(exc) != SQLSTATE_UNIQUE_VIOLATION:
        return None

    match = _DUPLICATE_KEY_PATTERN.search(_driver_detail(exc))
    if match is None:
        return ClassifiedError.from_kind(
            ErrorKind.BAD_REQUEST,
            "Duplicate field value entered. Please use another value.",
            cause=exc,
        )
    return ClassifiedError.from_kind(
        ErrorKind.BAD_REQUEST,
        f"{match.group('field')} '{match.group('value')}' already exists. Please use another value.",
        cause=exc,
    )


def _classify_token(exc: BaseException) -> ClassifiedError | None:
    # ExpiredSignatureError subclasses InvalidTokenError.
    if isinstance(exc, jwt.ExpiredSignatureError):
        return ClassifiedError.from_kind(ErrorKind.UNAUTHORIZED, EXPIRED_TOKEN_MESSAGE, cause=exc)
    if isinstance(exc, jwt.InvalidTokenError):
        return ClassifiedError.from_kind(ErrorKind.UNAUTHORIZED, INVALID_TOKEN_MESSAGE, cause=exc)
    return None


def _classify_passthrough(exc: BaseException) -> ClassifiedError | None:
    if isinstance(exc, AppError):
        if exc.classified.cause is None:
            return replace(exc.classified, cause=exc)
        return exc.classified

    if isinstance(exc, RateLimitExceeded):
        return ClassifiedError.from_kind(ErrorKind.RATE_LIMITED, cause=exc)

    if isinstance(exc, StarletteHTTPException) and 400 <= exc.status_code <= 599:
        return ClassifiedError.create(exc.status_code, _http_message(exc), cause=exc)
    return None


def _http_message(exc: StarletteHTTPException) -> str:
    if isinstance(exc.detail, str) and exc.detail:
        return exc.detail
    if isinstance(exc.detail, dict) and exc.detail.get("message"):
        return str(exc.detail["message"])
    try:
        return HTTPStatus(exc.status_code).phrase
    except ValueError:
        return "Request failed"


_CLASSIFIERS: tuple[Callable[[BaseException], ClassifiedError | None], ...] = (
    _classify_invalid_identifier,
    _classify_schema_validation,
    _classify_duplicate_key,
    _classify_token,
    _classify_passthrough,
)


def classify_error(exc: BaseException | ClassifiedError) -> ClassifiedError:
    """Map any failure onto exactly one classified error; the first matching shape wins."""
    if isinstance(exc, ClassifiedError):
        return exc

    for classifier in _CLASSIFIERS:
        classified = classifier(exc)
        if classified is not None:
            return classified

    return ClassifiedError.from_kind(
        ErrorKind.INTERNAL,
        str(exc) or ErrorKind.INTERNAL.default_message,
        is_operational=False,
        cause=exc,
    )


def _details(error: ClassifiedError) -> list[ErrorDetail] | None:
    if not error.errors:
        return None
    return [ErrorDetail(field=item.field, message=item.message) for item in error.errors]


def format_error(error: ClassifiedError, mode: str, *, timestamp: str | None = None) -> ErrorResponse:
    """Render a classified error as the JSON envelope for the deployment mode.

    Development exposes everything, including the stack trace. Any other mode
    is treated as production: operational errors keep their message and code,
    everything else collapses to a generic internal error.
    """
    timestamp = timestamp or utc_timestamp()
    suggestions = list(error.suggestions) or None

    if mode == DEVELOPMENT:
        return ErrorResponse(
            message=error.message,
            error=ErrorObject(code=error.code, timestamp=timestamp, name=error.name, suggestions=suggestions),
            stack=error.stack,
            errors=_details(error),
        )

    if error.is_operational:
        return ErrorResponse(
            message=error.message,
            error=ErrorObject(code=error.code, timestamp=timestamp, suggestions=suggestions),
            errors=_details(error),
        )

    return ErrorResponse(
        message=GENERIC_INTERNAL_MESSAGE,
        error=ErrorObject(code=INTERNAL_SERVER_ERROR_CODE, timestamp=timestamp),
    )


def error_status(error: ClassifiedError, mode: str) -> int:
    """HTTP status sent for the error in the given deployment mode."""
    if mode != DEVELOPMENT and not error.is_operational:
        return 500
    return error.status_code


def build_error_response(
    error: ClassifiedError,
    mode: str,
    *,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    payload = format_error(error, mode)
    return JSONResponse(
        status_code=error_status(error, mode),
        content=payload.model_dump(exclude_none=True),
        headers=headers,
    )
