"""
auth/directory.py -- User directory: registration, login, listing, deletion.

This is where the account invariants live:

  Bootstrap admin rule: the first account ever registered gets is_admin=True,
      every later one gets False. The user count and the insert happen inside
      one UserStore.serialized() transaction so two simultaneous first
      registrations cannot both become admin.

  Username uniqueness: the existence check and the insert share the same
      transaction. A concurrent writer in another process is caught by the
      UNIQUE constraint, and its IntegrityError becomes ConflictError -- never
      a silent overwrite.

  Last-admin protection: deleting an admin re-counts admins inside the same
      transaction as the delete. If the target is the only admin AND is the
      one asking, the delete is refused with LastAdminError.

      Only self-deletion is blocked. A different caller can still remove the
      sole admin; that asymmetry is kept as-is.

Errors are raised as auth.errors types at their point of origin; the HTTP
layer maps them to status codes.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import AuthError, ConflictError, LastAdminError, NotFoundError, ValidationError
from auth.models import User
from auth.passwords import MAX_PASSWORD_BYTES, burn_verify, hash_password, password_too_long, verify_password
from auth.store import UserStore

logger = logging.getLogger("userdesk.auth")


class UserDirectory:
    """Account operations over a UserStore.

    Usage:
        directory = UserDirectory(store)
        alice = directory.register("alice", "pw1")   # first account -> admin
        user = directory.authenticate("alice", "pw1")
        directory.delete(target_id=bob.id, requesting_user_id=alice.id)
    """

    def __init__(self, store: UserStore) -> None:
        self.store = store

    def register(self, username: str, password: str) -> User:
        """Create an account. The first account ever created becomes admin.

        Raises:
            ValidationError: username (after stripping) or password is empty,
                             or the password is longer than MAX_PASSWORD_BYTES.
            ConflictError:   the username is already taken.
        """
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError()
        if password_too_long(password):
            raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")

        # Hash before taking the write lock -- bcrypt is deliberately slow.
        password_hash = hash_password(password)

        try:
            with self.store.serialized() as conn:
                if self.store.get_by_username(username, conn=conn) is not None:
                    raise ConflictError()
                is_admin = self.store.count_users(conn=conn) == 0
                user = self.store.insert_user(
                    User(username=username, password_hash=password_hash, is_admin=is_admin),
                    conn=conn,
                )
        except IntegrityError as exc:
            raise ConflictError() from exc

        if user.is_admin:
            logger.info("Registered %r as the bootstrap administrator (id=%s)", user.username, user.id)
        else:
            logger.info("Registered %r (id=%s)", user.username, user.id)
        return user

    def authenticate(self, username: str, password: str) -> User:
        """Return the user whose credentials match.

        Unknown username and wrong password raise the same AuthError. bcrypt
        runs on both paths so timing does not distinguish them either.
        The username is stripped exactly as register() strips it.

        Raises:
            ValidationError: username or password is empty.
            AuthError:       credentials do not match.
        """
        username = (username or "").strip()
        if not username or not password:
            raise ValidationError()
        if password_too_long(password):
            # No stored password can be this long.
            raise AuthError()

        user = self.store.get_by_username(username)
        if user is None:
            burn_verify(password)
            raise AuthError()
        if not verify_password(password, user.password_hash):
            raise AuthError()
        return user

    def get(self, user_id: int) -> User | None:
        return self.store.get_by_id(user_id)

    def list_users(self) -> list[User]:
        """All accounts, newest first."""
        return self.store.list_users()

    def delete(self, target_id: int, requesting_user_id: int) -> User:
        """Delete target_id on behalf of requesting_user_id and return the removed user.

        Raises:
            NotFoundError:  no user with target_id.
            LastAdminError: the requester is the sole admin deleting themself.
        """
        with self.store.serialized() as conn:
            target = self.store.get_by_id(target_id, conn=conn)
            if target is None:
                raise NotFoundError()
            if target.is_admin:
                admins = self.store.count_admins(conn=conn)
                if admins == 1 and requesting_user_id == target_id:
                    logger.warning("Refused self-delete of sole administrator %r", target.username)
                    raise LastAdminError()
            if not self.store.delete_user(target_id, conn=conn):
                raise NotFoundError()

        logger.info("User %r (id=%s) deleted by user id=%s", target.username, target_id, requesting_user_id)
        return target
