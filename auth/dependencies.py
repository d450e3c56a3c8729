"""
auth/dependencies.py -- FastAPI Depends() guards (the auth gateway).

The session token is read from, in priority order:
  1. The session cookie (Settings.session_cookie_name) -- set by /login and /register.
  2. Authorization: Bearer <token> -- for scripted API clients.

try_get_session() is the soft variant (returns None on failure).
require_session() wraps it and raises SessionRequiredError if there is no usable session.
require_admin() wraps require_session() and raises ForbiddenError if the user is not admin.

Stale snapshots:
  Session.is_admin_snapshot is captured at login. require_admin() ignores it
  and re-reads the user from the store on every call, so a demoted or
  deleted admin loses access immediately.

Dangling sessions:
  A session whose user has been deleted is destroyed on first use and the
  request is treated as unauthenticated.

Layer rule: no imports from api/ or web/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import ForbiddenError, SessionRequiredError
from auth.models import Session, User
from core.config import get_settings


def get_session_token(request: Request) -> str | None:
    """Return the raw session token carried by the request, if any."""
    token: str | None = request.cookies.get(get_settings().session_cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def _resolve(request: Request) -> tuple[Session, User] | None:
    sessions = request.app.state.sessions
    token = get_session_token(request)
    session = sessions.resolve(token)
    if session is None:
        return None
    user = request.app.state.directory.get(session.user_id)
    if user is None:
        sessions.destroy(token)
        return None
    return session, user


def try_get_session(request: Request) -> Session | None:
    """Return the caller's active Session, or None. Never raises for auth reasons."""
    resolved = _resolve(request)
    return resolved[0] if resolved is not None else None


def require_session(request: Request) -> Session:
    """Require a valid session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: Session = Depends(require_session)): ...
    """
    session = try_get_session(request)
    if session is None:
        raise SessionRequiredError()
    return session


def require_admin(request: Request) -> Session:
    """Require a valid session whose user is currently an admin in the store.

    SessionRequiredError if unauthenticated, ForbiddenError if not admin.
    """
    resolved = _resolve(request)
    if resolved is None:
        raise SessionRequiredError()
    session, user = resolved
    if not user.is_admin:
        raise ForbiddenError()
    return session
