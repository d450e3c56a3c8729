"""
auth/errors.py -- Typed error taxonomy for the user directory and auth gateway.

Every error carries a machine-readable code and the HTTP status it maps to.
The directory and gateway raise these at their point of origin; a single
exception handler in api/main.py renders them into the ErrorResponse envelope.
Nothing below the HTTP layer builds responses.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations


class DirectoryError(Exception):
    """Base class for every intentional failure raised by auth/."""

    code: str = "error"
    status_code: int = 500
    message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(DirectoryError):
    """Missing or malformed input the caller can correct."""

    code = "validation_error"
    status_code = 400
    message = "Username and password are required."


class LastAdminError(ValidationError):
    """The sole administrator tried to delete their own account."""

    code = "last_admin"
    message = "You cannot delete the last administrator account."


class ConflictError(DirectoryError):
    code = "conflict"
    status_code = 409
    message = "A user with that username already exists."


class AuthError(DirectoryError):
    """Bad credentials.

    Deliberately identical for unknown usernames and wrong passwords so a
    caller cannot enumerate accounts.
    """

    code = "bad_credentials"
    status_code = 401
    message = "Invalid credentials."


class ForbiddenError(DirectoryError):
    """Authenticated but not entitled."""

    code = "forbidden"
    status_code = 403
    message = "Admin access required."


class SessionRequiredError(ForbiddenError):
    """No usable session. Browser routes turn this into a redirect to /login."""

    code = "unauthenticated"
    message = "Authentication required."
    redirect = "/login"


class NotFoundError(DirectoryError):
    code = "not_found"
    status_code = 404
    message = "User not found."


class InternalError(DirectoryError):
    """Datastore or connectivity failure. Never carries internal detail."""

    code = "internal_error"
    status_code = 500
    message = "An unexpected error occurred."
