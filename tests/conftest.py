"""
tests/conftest.py -- Shared test fixtures for UserDesk tests.

This module provides:
  - make_test_store(): isolated named shared-memory SQLite UserStore
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - store / directory: unit-level fixtures over a fresh, empty store
  - client: TestClient over the full ASGI app (api/ + web/) with an empty store

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool, and the concurrency
tests hit the store from several threads. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread. The
named URI format (file:name?mode=memory&cache=shared&uri=true) shares one
in-memory instance across all connections in the same process.

Environment variables must be set before any auth/core import so
get_settings() picks them up. BCRYPT_ROUNDS=4 keeps hashing fast in tests.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.directory import UserDirectory
from auth.sessions import SessionManager
from auth.store import UserStore


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_store(prefix: str = "test") -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    A random suffix keeps every test on its own database, so each one starts
    from an empty directory (the bootstrap admin rule depends on it).
    """
    name = f"{prefix}_{uuid.uuid4().hex}"
    return UserStore(db_url=f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(store: UserStore, sessions: SessionManager):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.directory = UserDirectory(store)
        app.state.sessions = sessions
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = make_test_store("unit")
    yield s
    s.close()


@pytest.fixture
def directory(store: UserStore) -> UserDirectory:
    return UserDirectory(store)


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Yield a TestClient over the full app backed by an empty store.

    follow_redirects=False is essential: redirect tests assert on Location
    headers, which are invisible once the client follows the redirect.
    The store and session table are reachable as client.app.state.*.
    """
    user_store = make_test_store("api")
    sessions = SessionManager(ttl_seconds=3600, max_sessions_per_user=10)
    app.router.lifespan_context = _patch_lifespan(user_store, sessions)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c

    user_store.close()

