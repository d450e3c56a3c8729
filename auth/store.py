"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
The directory and gateway never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  serialized() yields one transaction under a process-wide lock (plus a
  table lock on PostgreSQL). UserDirectory runs its check-then-write
  sequences inside it: count-then-insert for registration and
  count-admins-then-delete for deletion. The UNIQUE constraint on username
  is the backstop for writers in other processes -- an IntegrityError
  surfaces to the caller.

  Every read/write method accepts an optional conn so it can join an open
  serialized() transaction. Without one it opens and commits its own.

DB URL: Settings.database_url (SQLite file next to the repo by default).
The schema is created on construction if absent; existing rows are never
migrated.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, create_engine, event, false, func, select, text
from sqlalchemy.engine import Connection, Engine

from auth.models import User

logger = logging.getLogger("userdesk.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("is_admin", Boolean, nullable=False, server_default=false()),
    Column("created_at", String(40), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    # Fixed-width microseconds keep lexical order equal to chronological order.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///userdesk.db")
        user = store.insert_user(User(username="alice", password_hash=hash_password("pw"), is_admin=True))
        same = store.get_by_username("alice")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        self._write_lock = threading.RLock()
        _metadata.create_all(self.engine)
        logger.info("Table 'users' verified (dialect=%s)", self.engine.dialect.name)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def serialized(self) -> Iterator[Connection]:
        """Yield a connection inside a transaction no other writer can interleave with.

        Commits on normal exit, rolls back if the block raises.
        """
        with self._write_lock, self.engine.begin() as conn:
            if self.engine.dialect.name == "postgresql":
                conn.execute(text("LOCK TABLE users IN SHARE ROW EXCLUSIVE MODE"))
            yield conn

    @contextmanager
    def _use(self, conn: Connection | None) -> Iterator[Connection]:
        if conn is not None:
            yield conn
            return
        with self.engine.begin() as own:
            yield own

    # ------------------------------------------------------------------
    # Counts
    # ------------------------------------------------------------------

    def count_users(self, conn: Connection | None = None) -> int:
        with self._use(conn) as c:
            result = c.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def count_admins(self, conn: Connection | None = None) -> int:
        """Return how many users currently hold the admin flag."""
        with self._use(conn) as c:
            result = c.execute(select(func.count()).select_from(_users).where(_users.c.is_admin.is_(True))).scalar()
        return result or 0

    def has_users(self) -> bool:
        return self.count_users() > 0

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_username(self, username: str, conn: Connection | None = None) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self._use(conn) as c:
            row = c.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int, conn: Connection | None = None) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self._use(conn) as c:
            row = c.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, newest first. Ties on created_at fall back to id."""
        with self._use(None) as c:
            rows = c.execute(_users.select().order_by(_users.c.created_at.desc(), _users.c.id.desc())).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert_user(self, user: User, conn: Connection | None = None) -> User:
        """Insert a new user and return it with id and created_at filled in.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        """
        created_at = _now_iso()
        with self._use(conn) as c:
            result = c.execute(
                _users.insert().values(
                    username=user.username,
                    password_hash=user.password_hash,
                    is_admin=user.is_admin,
                    created_at=created_at,
                )
            )
            user_id = result.inserted_primary_key[0]
        return User(
            id=user_id,
            username=user.username,
            password_hash=user.password_hash,
            is_admin=user.is_admin,
            created_at=created_at,
        )

    def delete_user(self, user_id: int, conn: Connection | None = None) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Callers must check last-admin invariants before calling this method --
        the store does not enforce admin counts.
        """
        with self._use(conn) as c:
            result = c.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        is_admin=bool(row.is_admin),
        created_at=row.created_at,
    )
