"""Unit tests for failure classification onto the error taxonomy."""

from __future__ import annotations

from datetime import datetime
from datetime import timedelta
from datetime import timezone
from types import SimpleNamespace

import jwt
import pytest
from pydantic import BaseModel
from pydantic import ValidationError
from sqlalchemy.exc import DataError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import AppError
from app.core.errors import ClassifiedError
from app.core.errors import ErrorKind
from app.core.errors import classify_error
from app.core.errors import error_code
from app.db.base import parse_identifier

TOKEN_SECRET = "unit-test-signing-secret-with-enough-length"


class _DriverError(Exception):
    def __init__(self, message: str, *, sqlstate: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate
        self.diag = SimpleNamespace(message_detail=detail)


class _Signup(BaseModel):
    email: str
    age: int


def _capture(fn) -> BaseException:
    with pytest.raises(Exception) as exc_info:
        fn()
    return exc_info.value


def test_invalid_identifier_maps_to_bad_request() -> None:
    exc = _capture(lambda: parse_identifier("abc123", field="productId"))

    classified = classify_error(exc)

    assert classified.status_code == 400
    assert classified.code == "BAD_REQUEST"
    assert classified.message == "Invalid productId: abc123"
    assert classified.is_operational is True


def test_driver_invalid_text_representation_maps_to_bad_request() -> None:
    orig = _DriverError('invalid input syntax for type uuid: "not-a-uuid"', sqlstate="22P02")
    exc = DataError("SELECT * FROM products WHERE id = %(id)s", {"id": "not-a-uuid"}, orig)

    classified = classify_error(exc)

    assert classified.status_code == 400
    assert classified.message == "Invalid id: not-a-uuid"


def test_driver_invalid_text_without_named_parameter_falls_back_to_type() -> None:
    orig = _DriverError('invalid input syntax for type uuid: "not-a-uuid"', sqlstate="22P02")
    exc = DataError("SELECT * FROM products WHERE id = %s", ("not-a-uuid",), orig)

    classified = classify_error(exc)

    assert classified.status_code == 400
    assert classified.message == "Invalid uuid: not-a-uuid"


def test_schema_validation_joins_field_messages_in_order() -> None:
    exc = _capture(lambda: _Signup.model_validate({"age": "old"}))
    assert isinstance(exc, ValidationError)

    classified = classify_error(exc)

    assert classified.status_code == 400
    assert classified.code == "BAD_REQUEST"
    assert [item.field for item in classified.errors] == ["email", "age"]
    expected = ". ".join(item.message for item in classified.errors)
    assert classified.message == f"Invalid input data. {expected}"
    assert classified.errors[0].message == "Field required"


def test_duplicate_key_reports_field_and_value() -> None:
    orig = _DriverError(
        'duplicate key value violates unique constraint "users_email_key"',
        sqlstate="23505",
        detail="Key (email)=(a@b.com) already exists.",
    )
    exc = IntegrityError("INSERT INTO users ...", {}, orig)

    classified = classify_error(exc)

    assert classified.status_code == 400
    assert classified.code == "BAD_REQUEST"
    assert classified.message == "email 'a@b.com' already exists. Please use another value."


def test_duplicate_key_without_diag_reads_driver_message() -> None:
    orig = _DriverError(
        'duplicate key value violates unique constraint "users_sku_key"\nDETAIL:  Key (sku)=(SKU-1) already exists.',
        sqlstate="23505",
    )
    exc = IntegrityError("INSERT INTO products ...", {}, orig)

    classified = classify_error(exc)

    assert "sku 'SKU-1' already exists" in classified.message


def test_other_integrity_errors_are_not_treated_as_duplicates() -> None:
    orig = _DriverError("insert or update violates foreign key constraint", sqlstate="23503")
    exc = IntegrityError("INSERT INTO orders ...", {}, orig)

    classified = classify_error(exc)

    assert classified.status_code == 500
    assert classified.is_operational is False


def test_malformed_token_maps_to_unauthorized() -> None:
    exc = _capture(lambda: jwt.decode("not-a-token", TOKEN_SECRET, algorithms=["HS256"]))

    classified = classify_error(exc)

    assert classified.status_code == 401
    assert classified.code == "UNAUTHORIZED"
    assert classified.message == "Invalid token. Please log in again."


def test_expired_token_maps_to_unauthorized_with_expiry_message() -> None:
    expired_at = datetime.now(timezone.utc) - timedelta(minutes=5)
    token = jwt.encode({"sub": "user-1", "exp": expired_at}, TOKEN_SECRET, algorithm="HS256")
    exc = _capture(lambda: jwt.decode(token, TOKEN_SECRET, algorithms=["HS256"]))

    classified = classify_error(exc)

    assert classified.status_code == 401
    assert classified.message == "Your token has expired. Please log in again."


def test_app_errors_pass_through_and_stay_stable() -> None:
    exc = AppError.not_found("Product")

    first = classify_error(exc)
    second = classify_error(first)

    assert second is first
    assert (first.status_code, first.code, first.message) == (404, "RESOURCE_NOT_FOUND", "Product not found")
    assert first.cause is exc
    assert classify_error(exc) == first


def test_http_exceptions_keep_status_and_detail() -> None:
    classified = classify_error(StarletteHTTPException(status_code=409, detail="Cart already checked out"))

    assert classified.status_code == 409
    assert classified.code == "CONFLICT"
    assert classified.message == "Cart already checked out"
    assert classified.is_operational is True


def test_unexpected_errors_default_to_non_operational_internal() -> None:
    exc = RuntimeError("connection pool exhausted")

    classified = classify_error(exc)

    assert classified.status_code == 500
    assert classified.code == "SERVER_ERROR"
    assert classified.is_operational is False
    assert classified.message == "connection pool exhausted"
    assert classified.name == "RuntimeError"


@pytest.mark.parametrize(
    ("status_code", "message", "expected"),
    [
        (404, "Can't find /nowhere on this server!", "ROUTE_NOT_FOUND"),
        (404, "Product not found", "RESOURCE_NOT_FOUND"),
        (401, "Authentication failed", "UNAUTHORIZED"),
        (403, "Forbidden", "FORBIDDEN"),
        (400, "Bad request", "BAD_REQUEST"),
        (409, "Resource already exists", "CONFLICT"),
        (422, "Validation failed", "VALIDATION_ERROR"),
        (429, "Slow down", "RATE_LIMIT_EXCEEDED"),
        (405, "Method not allowed", "SERVER_ERROR"),
        (503, "Unavailable", "SERVER_ERROR"),
    ],
)
def test_error_code_table(status_code: int, message: str, expected: str) -> None:
    assert error_code(status_code, message) == expected


@pytest.mark.parametrize("status_code", [200, 302, 399, 600])
def test_classified_error_rejects_non_error_status(status_code: int) -> None:
    with pytest.raises(ValueError):
        ClassifiedError.create(status_code, "nope")


def test_error_kinds_cover_the_taxonomy() -> None:
    statuses = {kind.status_code for kind in ErrorKind}

    assert {400, 401, 403, 404, 409, 429, 500} <= statuses
    assert AppError.forbidden().status_code == 403
    assert AppError.conflict().message == "Resource already exists"
