"""
tests/conftest.py -- Shared test fixtures for the session authority tests.

This module provides:
  - FakeClock: a settable clock injected into TokenService and AuthService
  - settings / store / tokens / service: an isolated auth stack per test on an
    in-memory SQLite database, driven by the fake clock
  - api: (client, store) -- TestClient over the real FastAPI app with the
    lifespan patched to use an isolated store and the real clock

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixture because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any app import so get_settings() can
auto-generate secrets in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"


class FakeClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


def make_settings(**overrides) -> Settings:
    values = {
        "debug": False,
        "access_token_secret": ACCESS_SECRET,
        "refresh_token_secret": REFRESH_SECRET,
        "database_url": "sqlite:///:memory:",
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Core stack fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def tokens(settings: Settings, clock: FakeClock) -> TokenService:
    return TokenService.from_settings(settings, clock=clock)


@pytest.fixture
def service(store: UserStore, tokens: TokenService, settings: Settings, clock: FakeClock) -> AuthService:
    return AuthService(store, tokens, settings, clock=clock)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, user_store: UserStore, auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test objects into app.state so TestClient routes see an
    isolated test DB rather than the configured database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.auth_service = auth_service
        yield

    return test_lifespan


@pytest.fixture
def api() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) for HTTP integration tests.

    Function-scoped so every test starts with an empty users table and an
    empty cookie jar.
    """
    settings = make_settings()
    # UserStore pins memory URLs to SingletonThreadPool.
    user_store = UserStore(f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    auth_service = AuthService(user_store, TokenService.from_settings(settings), settings)

    app.router.lifespan_context = _patch_lifespan(settings, user_store, auth_service)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store

    user_store.close()
