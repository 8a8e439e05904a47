"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before any app module is imported so the
settings object is built with test values.
"""

import os

os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import RateLimitPolicy, RateLimitSettings


@pytest.fixture
def clock() -> Mock:
    """Controllable time source starting at UNIX time 1000 s."""
    return Mock(return_value=1000.0)


@pytest.fixture
def rate_limit_settings() -> RateLimitSettings:
    """Small policies so HTTP tests can exhaust them quickly."""
    return RateLimitSettings(
        enabled=True,
        policies={
            "ticket_create": RateLimitPolicy(window_ms=60_000, max_requests=2),
            "ticket_list": RateLimitPolicy(window_ms=60_000, max_requests=5),
        },
    )


@pytest.fixture
def client() -> TestClient:
    """Client for an app built with the default policies."""
    return TestClient(create_app())
