"""
web/routes.py -- Browser-facing entry points: login, registration, logout.

These routes share app.state with the API routes (same directory and session
table). Login and registration accept the JSON body the login/register pages
post and answer with JSON carrying the next page; logout and the root path
answer with redirects. The HTML pages themselves are served elsewhere.

Routes:
  GET  /           -- redirect to /dashboard with a session, /login without
  POST /login      -- password login; issues session cookie
  POST /register   -- create account (first one becomes admin); issues session cookie
  GET  /logout     -- destroy session, clear cookie, redirect /login
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from api.models import AuthRedirectResponse, CredentialsRequest
from auth.dependencies import get_session_token, require_session, try_get_session
from auth.directory import UserDirectory
from auth.models import Session
from auth.sessions import SessionManager
from core.config import get_settings

logger = logging.getLogger("userdesk.web")

router = APIRouter()

_DASHBOARD = "/dashboard"
_LOGIN = "/login"

# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response: Response, token: str) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the session TTL; omitted (browser-session cookie) when
        sessions never expire.
    """
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_ttl_seconds or None,
    )


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _start_session(request: Request, user_id: int, is_admin: bool, status_code: int, message: str) -> JSONResponse:
    sessions: SessionManager = request.app.state.sessions
    token = sessions.create(user_id, is_admin)
    resp = JSONResponse(
        status_code=status_code,
        content=AuthRedirectResponse(message=message, redirect=_DASHBOARD).model_dump(),
    )
    set_session_cookie(resp, token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/")
def root(request: Request) -> RedirectResponse:
    if try_get_session(request) is not None:
        return RedirectResponse(_DASHBOARD, status_code=302)
    return RedirectResponse(_LOGIN, status_code=302)


@router.post("/login", response_model=AuthRedirectResponse)
def login(request: Request, body: CredentialsRequest) -> JSONResponse:
    """Authenticate with username and password; issue a session cookie.

    Wrong password and unknown username produce the same 401 body.
    """
    logger.info("Login attempt for %r from %s", body.username, _client_ip(request))
    directory: UserDirectory = request.app.state.directory
    user = directory.authenticate(body.username, body.password)
    return _start_session(request, user.id, user.is_admin, 200, "Login successful.")


@router.post("/register", response_model=AuthRedirectResponse, status_code=201)
def register(request: Request, body: CredentialsRequest) -> JSONResponse:
    """Create an account and log it in. The very first account becomes admin."""
    logger.info("Registration attempt for %r from %s", body.username, _client_ip(request))
    directory: UserDirectory = request.app.state.directory
    user = directory.register(body.username, body.password)
    return _start_session(request, user.id, user.is_admin, 201, "Registration successful.")


@router.get("/logout")
def logout(request: Request, session: Session = Depends(require_session)) -> RedirectResponse:
    """Destroy the session, clear the cookie, and redirect to the login page."""
    request.app.state.sessions.destroy(get_session_token(request))
    resp = RedirectResponse(_LOGIN, status_code=302)
    resp.delete_cookie(get_settings().session_cookie_name)
    return resp
