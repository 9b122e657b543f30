"""
tests/conftest.py -- Shared test fixtures for Sociosim API tests.

This module provides:
  - _patch_lifespan(): wires a fake provider factory into app.state, bypassing the
    real per-request auth clients and outbound HTTP client
  - api_env: one TestClient per test module (plus the fake provider and HTTP client)
  - api_client: per-test view of api_env with mocks and rate limits reset

Environment must be set before any api/ or core/ import: get_settings() is an
lru_cache singleton read at module load by api.main and the route modules.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set before any core/api import so get_settings() accepts the
# missing Supabase configuration and the TestClient host passes TrustedHost.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("CAULDRON_TIMEOUT_MS", "300")
os.environ.setdefault("CAULDRON_BASE_URL", "http://cauldron.test")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import AuthTimeouts
from auth.queue import SerialQueue
from tests.helpers import FakeSupabaseAuth

# Short deadlines so timeout paths finish quickly through the HTTP stack.
TEST_TIMEOUTS = AuthTimeouts(
    get_session_ms=200,
    sign_in_ms=200,
    sign_out_ms=200,
    set_session_ms=200,
    exchange_code_ms=200,
    update_user_ms=200,
    get_user_ms=200,
    reset_password_ms=200,
)


def _patch_lifespan(fake_auth: FakeSupabaseAuth, http_client: MagicMock):
    """Return an async context manager that replaces the real lifespan.

    Every request's auth client is fake_auth, handed out by a MagicMock
    factory so tests can count client constructions. A fresh SerialQueue per
    client keeps tests independent of the process-wide auth_queue (whose
    futures would belong to another loop).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_client_factory = MagicMock(return_value=fake_auth)
        app.state.auth_queue = SerialQueue()
        app.state.auth_timeouts = TEST_TIMEOUTS
        app.state.http_client = http_client
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_env() -> Generator[tuple[TestClient, FakeSupabaseAuth, MagicMock], None, None]:
    """Yield (client, fake_auth, http_client) sharing one app instance per module."""
    fake_auth = FakeSupabaseAuth()
    http_client = MagicMock()
    app.router.lifespan_context = _patch_lifespan(fake_auth, http_client)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, fake_auth, http_client


@pytest.fixture
def api_client(api_env) -> tuple[TestClient, FakeSupabaseAuth, MagicMock]:
    """Per-test view of api_env with provider mocks and rate limits reset."""
    client, fake_auth, http_client = api_env
    fake_auth.reset()
    http_client.reset_mock()
    client.app.state.auth_client_factory.reset_mock()
    limiter.reset()
    return client, fake_auth, http_client
