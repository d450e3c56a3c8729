"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores, the
directory, and routes do the work.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass
class User:
    """A record in the user directory.

    password_hash is the bcrypt hash string; the plaintext is never kept.
    is_admin is set once at registration (bootstrap admin rule) and never
    edited afterwards. created_at is an ISO 8601 UTC timestamp assigned by
    the store on insert.
    """

    username: str
    password_hash: str
    is_admin: bool = False
    id: int | None = None
    created_at: str | None = None


@dataclass
class Session:
    """Server-side proof of a prior successful login.

    user_id is a weak reference: the user may be deleted while the session
    still exists. is_admin_snapshot is captured at login time and may go
    stale -- it is a UI hint, never the authorization source of truth.

    expires_at is None when sessions are configured never to expire.
    """

    token: str
    user_id: int
    is_admin_snapshot: bool
    created_at: datetime
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at
