"""Shared pytest fixtures for API test suites."""

from collections.abc import Callable
from collections.abc import Generator
from dataclasses import replace
from pathlib import Path
import sys

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import Settings  # noqa: E402
from app.main import create_app  # noqa: E402

TEST_SETTINGS = Settings(database_url="", environment="production", rate_limit_default="1000/minute")


@pytest.fixture
def make_app() -> Callable[..., FastAPI]:
    """Build a fresh app; keyword arguments override test settings."""

    def _make_app(**overrides: object) -> FastAPI:
        return create_app(replace(TEST_SETTINGS, **overrides))

    return _make_app


@pytest.fixture
def client(make_app: Callable[..., FastAPI]) -> Generator[TestClient, None, None]:
    """Provide a production-mode API test client."""
    with TestClient(make_app()) as test_client:
        yield test_client


@pytest.fixture
def dev_client(make_app: Callable[..., FastAPI]) -> Generator[TestClient, None, None]:
    """Provide a development-mode API test client."""
    with TestClient(make_app(environment="development")) as test_client:
        yield test_client
