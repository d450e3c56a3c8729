"""
api/routes/users.py -- User directory REST endpoints.

Routes:
  GET    /api/users             -- list all users, newest first (requires session)
  DELETE /api/users/{user_id}   -- delete a user (requires admin)

Security:
  DELETE re-checks admin status against the store through require_admin();
  the admin snapshot cached in the session is never trusted for it.
  The last-admin guard lives in UserDirectory.delete(), inside the same
  transaction as the delete.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, UserResponse
from auth.dependencies import require_admin, require_session
from auth.directory import UserDirectory
from auth.models import Session

# Auth policy:
# - GET    /api/users:            requires session (require_session)
# - DELETE /api/users/{user_id}:  requires admin (require_admin)
router = APIRouter()


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    session: Session = Depends(require_session),
) -> list[UserResponse]:
    """Return every account, newest first. password_hash is never included."""
    directory: UserDirectory = request.app.state.directory
    return [UserResponse.from_user(u) for u in directory.list_users()]


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: int,
    session: Session = Depends(require_admin),
) -> MessageResponse:
    """Delete a user. Admin only.

    The sole administrator cannot delete their own account (400 last_admin).
    Sessions held by the deleted user are revoked immediately.
    """
    directory: UserDirectory = request.app.state.directory
    directory.delete(user_id, requesting_user_id=session.user_id)
    request.app.state.sessions.destroy_user_sessions(user_id)
    return MessageResponse(message="User deleted.")
