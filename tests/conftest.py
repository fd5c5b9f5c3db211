"""
tests/conftest.py -- Shared test fixtures for the Portfolio API tests.

This module provides:
  - make_auth_state() (tests/_helpers/auth.py): isolated shared-memory auth DB,
    stores, codec and manager
  - _patch_lifespan(): wires a test state into app.state, bypassing real startup
  - auth_state: per-test state for unit tests of the session core
  - api_client: TestClient with a seeded account and a valid access token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because the session manager and TestClient run store calls in worker threads.
Plain :memory: DBs are per-connection and would present a blank schema to each
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

DEBUG must be set before any api/core import so get_settings() auto-generates
the signing secrets instead of raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# Set before any core/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from tests._helpers.auth import AuthState, make_auth_state


def _patch_lifespan(state: AuthState):
    """Return an async context manager that replaces the real lifespan.

    The sweep_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = state.user_store
        app.state.refresh_store = state.refresh_store
        app.state.codec = state.codec
        app.state.session_manager = state.manager
        app.state.sweep_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.sweep_task.cancel()

    return test_lifespan


@pytest.fixture
def auth_state() -> Generator[AuthState, None, None]:
    state = make_auth_state()
    yield state
    state.close()


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, str, AuthState], None, None]:
    """Yield (client, access_token, state) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers against an isolated in-memory DB.
    """
    state = make_auth_state()
    token = state.codec.issue_access_token(str(state.user_id))
    app.router.lifespan_context = _patch_lifespan(state)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, state

    state.close()
