"""Unit tests for auth/sessions.py -- the in-memory session table.

Covers:
- create() / resolve() round trip carries user id and admin snapshot
- destroy() makes resolve() return None and is idempotent
- Unknown and empty tokens resolve to None
- Expired sessions are evicted lazily on resolve() and in bulk by purge_expired()
- destroy_user_sessions() removes only the given user's sessions
- Oldest sessions are evicted past max_sessions_per_user
- Tokens stay unique under concurrent creation
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from auth.sessions import SessionManager


def _expire(manager: SessionManager, token: str) -> None:
    manager.resolve(token).expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)


def test_create_then_resolve():
    manager = SessionManager(ttl_seconds=60)
    token = manager.create(user_id=7, is_admin=True)
    session = manager.resolve(token)
    assert session is not None
    assert session.user_id == 7
    assert session.is_admin_snapshot is True
    assert session.token == token
    assert session.expires_at is not None


def test_destroy_then_resolve_returns_none():
    manager = SessionManager()
    token = manager.create(user_id=1, is_admin=False)
    manager.destroy(token)
    assert manager.resolve(token) is None


def test_destroy_is_idempotent():
    manager = SessionManager()
    token = manager.create(user_id=1, is_admin=False)
    manager.destroy(token)
    manager.destroy(token)
    manager.destroy("never-issued")
    manager.destroy(None)
    assert len(manager) == 0


def test_unknown_and_empty_tokens_resolve_to_none():
    manager = SessionManager()
    assert manager.resolve("nope") is None
    assert manager.resolve("") is None
    assert manager.resolve(None) is None


def test_zero_ttl_never_expires():
    manager = SessionManager(ttl_seconds=0)
    token = manager.create(user_id=1, is_admin=False)
    session = manager.resolve(token)
    assert session.expires_at is None
    assert session.is_expired() is False


def test_expired_session_is_evicted_on_resolve():
    manager = SessionManager(ttl_seconds=60)
    token = manager.create(user_id=1, is_admin=False)
    _expire(manager, token)
    assert manager.resolve(token) is None
    assert len(manager) == 0


def test_purge_expired_only_removes_expired():
    manager = SessionManager(ttl_seconds=60)
    stale = manager.create(user_id=1, is_admin=False)
    fresh = manager.create(user_id=2, is_admin=False)
    _expire(manager, stale)
    assert manager.purge_expired() == 1
    assert manager.resolve(fresh) is not None
    assert len(manager) == 1


def test_destroy_user_sessions():
    manager = SessionManager()
    a1 = manager.create(user_id=1, is_admin=True)
    a2 = manager.create(user_id=1, is_admin=True)
    b = manager.create(user_id=2, is_admin=False)
    assert manager.destroy_user_sessions(1) == 2
    assert manager.resolve(a1) is None
    assert manager.resolve(a2) is None
    assert manager.resolve(b) is not None
    assert manager.destroy_user_sessions(1) == 0


def test_oldest_sessions_evicted_past_cap():
    manager = SessionManager(max_sessions_per_user=2)
    first = manager.create(user_id=1, is_admin=False)
    second = manager.create(user_id=1, is_admin=False)
    third = manager.create(user_id=1, is_admin=False)
    other = manager.create(user_id=2, is_admin=False)
    assert manager.resolve(first) is None
    assert manager.resolve(second) is not None
    assert manager.resolve(third) is not None
    assert manager.resolve(other) is not None


def test_tokens_unique_under_concurrent_create():
    manager = SessionManager(max_sessions_per_user=1000)

    def _create(i: int) -> str:
        return manager.create(user_id=i % 5, is_admin=False)

    with ThreadPoolExecutor(max_workers=8) as pool:
        tokens = list(pool.map(_create, range(400)))

    assert len(set(tokens)) == 400
    assert len(manager) == 400
    assert all(len(t) >= 40 for t in tokens)
