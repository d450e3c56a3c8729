"""
auth/sessions.py -- Server-side session table.

Sessions live in process memory, keyed by an opaque token. The token is the
only thing the client holds (in an httpOnly cookie); the user id and admin
snapshot never leave the server.

Lifecycle per token: ABSENT -> ACTIVE -> DESTROYED (terminal).

Thread safety:
  FastAPI runs sync handlers in a thread pool, so create/resolve/destroy can
  arrive concurrently from different users. Every access to the table happens
  under one threading.Lock and no method hands the raw dict to callers.

Expiry:
  Checked lazily on resolve(). purge_expired() trims the table in bulk and is
  driven by the background task in api/main.py.

Tokens:
  secrets.token_urlsafe(32) -- 256 bits of entropy, so collisions between
  concurrently created sessions are cryptographically negligible. create()
  still re-rolls on the astronomically unlikely duplicate.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import secrets
import threading
from datetime import datetime, timedelta, timezone

from auth.models import Session

logger = logging.getLogger("userdesk.sessions")

_TOKEN_BYTES = 32


class SessionManager:
    """Synchronized create / resolve / destroy over an in-memory session table.

    Args:
        ttl_seconds:           Session lifetime. 0 means sessions never expire.
        max_sessions_per_user: When a user opens more sessions than this, the
                               oldest ones are evicted on create().
    """

    def __init__(self, ttl_seconds: int = 0, max_sessions_per_user: int = 10) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_sessions_per_user = max_sessions_per_user
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, user_id: int, is_admin: bool) -> str:
        """Open a session for user_id and return its token."""
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=self.ttl_seconds) if self.ttl_seconds > 0 else None
        with self._lock:
            token = secrets.token_urlsafe(_TOKEN_BYTES)
            while token in self._sessions:
                token = secrets.token_urlsafe(_TOKEN_BYTES)
            self._evict_oldest(user_id)
            self._sessions[token] = Session(
                token=token,
                user_id=user_id,
                is_admin_snapshot=is_admin,
                created_at=now,
                expires_at=expires_at,
            )
        return token

    def resolve(self, token: str | None) -> Session | None:
        """Return the active Session for token, or None.

        None covers empty, unknown, destroyed, and expired tokens. An expired
        session is removed as a side effect.
        """
        if not token:
            return None
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.is_expired():
                del self._sessions[token]
                logger.info("Session for user %s expired", session.user_id)
                return None
            return session

    def destroy(self, token: str | None) -> None:
        """Remove a session. Destroying an absent session is a no-op."""
        if not token:
            return
        with self._lock:
            self._sessions.pop(token, None)

    def destroy_user_sessions(self, user_id: int) -> int:
        """Remove every session bound to user_id. Returns how many were removed."""
        with self._lock:
            tokens = [t for t, s in self._sessions.items() if s.user_id == user_id]
            for token in tokens:
                del self._sessions[token]
        if tokens:
            logger.info("Revoked %d session(s) for user %s", len(tokens), user_id)
        return len(tokens)

    def purge_expired(self) -> int:
        """Delete all expired sessions. Returns number of sessions removed."""
        now = datetime.now(timezone.utc)
        with self._lock:
            expired = [t for t, s in self._sessions.items() if s.is_expired(now)]
            for token in expired:
                del self._sessions[token]
        return len(expired)

    def _evict_oldest(self, user_id: int) -> None:
        # Caller holds self._lock.
        owned = sorted(
            (s for s in self._sessions.values() if s.user_id == user_id),
            key=lambda s: s.created_at,
        )
        excess = len(owned) - self.max_sessions_per_user + 1
        if excess <= 0:
            return
        for session in owned[:excess]:
            del self._sessions[session.token]
        logger.info("Evicted %d oldest session(s) for user %s", excess, user_id)
