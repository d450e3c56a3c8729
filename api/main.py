"""
api/main.py -- FastAPI application entry point for UserDesk.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. log_requests          -- one log line per request with latency

Lifespan owns the process-level resources: the UserStore (engine and
connection pool), the UserDirectory built on it, the SessionManager, and the
background session purge task. They are created on startup, published on
app.state, and torn down symmetrically on shutdown. Nothing reaches them as
module-level globals.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.users import router as users_router
from auth.directory import UserDirectory
from auth.errors import DirectoryError, InternalError, SessionRequiredError
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings

_VERSION = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if _settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("userdesk.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Drop expired sessions every `interval` seconds.

    resolve() already evicts expired sessions lazily; this keeps sessions
    that are never presented again from accumulating. CancelledError from
    task.cancel() during shutdown propagates out of asyncio.sleep and unwinds
    the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval)
        removed = app.state.sessions.purge_expired()
        if removed:
            logger.info("Purged %d expired session(s)", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the store, directory, and session table; dispose them on shutdown.

    Startup order matters: the directory wraps the store, and the purge task
    references app.state.sessions, so it starts last.
    """
    logger.info("UserDesk API starting up")
    app.state.user_store = UserStore(_settings.database_url)
    app.state.directory = UserDirectory(app.state.user_store)
    app.state.sessions = SessionManager(
        ttl_seconds=_settings.session_ttl_seconds,
        max_sessions_per_user=_settings.max_sessions_per_user,
    )
    if not app.state.user_store.has_users():
        logger.info("No users registered. The first registration will become administrator.")
    elif app.state.user_store.count_admins() == 0:
        logger.warning("No administrators remain. User deletion is unavailable until one is restored.")
    app.state.purge_task = asyncio.create_task(_purge_loop(app, _settings.session_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    app.state.user_store.close()
    logger.info("UserDesk API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="UserDesk API",
    description="Session-based authentication and admin-guarded user management.",
    version=_VERSION,
    lifespan=lifespan,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix="/api", tags=["Users"])
# Login / register / logout live in web/routes.py and are mounted by asgi.py.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    redirect = extra.pop("redirect", None)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, **extra),
            redirect=redirect,
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(DirectoryError)
async def directory_error_handler(request: Request, exc: DirectoryError) -> JSONResponse:
    """Render typed auth/directory errors.

    A missing session on a browser route is a redirect to the login page, not
    an error. API routes get a 403 whose body names the login entry point.
    """
    if isinstance(exc, SessionRequiredError):
        if not request.url.path.startswith("/api/"):
            return RedirectResponse(exc.redirect, status_code=302)
        return _error_response(exc.status_code, exc.code, exc.message, redirect=exc.redirect)
    return _error_response(exc.status_code, exc.code, exc.message)


@app.exception_handler(SQLAlchemyError)
async def datastore_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Map any datastore failure to a generic 500.

    The driver error is logged server-side only; it can carry SQL, hostnames,
    or credentials that must never reach the client.
    """
    logger.exception("Datastore failure on %s %s", request.method, request.url.path)
    err = InternalError()
    return _error_response(err.status_code, err.code, err.message)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the request body or path params fail validation."""
    return _error_response(
        400,
        "validation_error",
        "Request validation failed.",
        detail=str(exc.errors()),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    err = InternalError()
    return _error_response(err.status_code, err.code, err.message)


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and a database round-trip check. No auth."""
    try:
        database = "ok" if request.app.state.user_store.ping() else "error"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable")
        database = "error"
    return HealthResponse(version=_VERSION, components={"app": "ok", "database": database})
