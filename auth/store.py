"""
auth/store.py -- SQLAlchemy Core persistence layer for the users relation.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. Service and route code
never touches SQL directly.

Security:
  All queries use bound parameters built from SQLAlchemy Core expressions.
  No f-strings in SQL. update_profile() accepts only whitelisted column names.

  Email uniqueness is checked by AuthService before insert. The UNIQUE index on
  email is a backstop for the race where two registrations pass that check at
  the same time: the loser gets sqlalchemy.exc.IntegrityError.

  rotate_refresh_token() is a single conditional UPDATE (WHERE id = ? AND
  refresh_token = ?). Two concurrent refreshes presenting the same token both
  run it, but only the first still matches, so exactly one rotation wins.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import SingletonThreadPool

from auth.models import User

logger = logging.getLogger("authority.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(50), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("refresh_token", Text),  # NULL = no active session
    Column("token_expires_at", String(32)),  # ISO 8601, paired with refresh_token
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update_profile() may touch. Anything else is a programming error.
_PROFILE_COLUMNS = frozenset({"username", "email"})


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _iso(value: datetime | None) -> str | None:
    return value.astimezone(timezone.utc).isoformat() if value is not None else None


def _is_memory_url(db_url: str) -> bool:
    return ":memory:" in db_url or "mode=memory" in db_url


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create_user("alice", "alice@x.com", hash_password("secret123"))
        store.update_refresh_token(user.id, token, expires_at)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        engine_args: dict = {}
        if db_url.startswith("sqlite"):
            engine_args["connect_args"] = {"check_same_thread": False}
            if _is_memory_url(db_url):
                # One connection per thread; a shared-cache URI makes them all see the same database.
                engine_args["poolclass"] = SingletonThreadPool
        self.engine: Engine = create_engine(db_url, **engine_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, username: str, email: str, password_hash: str) -> User:
        """Insert a new user and return the stored record, id included.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=username,
                    email=email,
                    password_hash=password_hash,
                    is_active=1,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        logger.debug("Inserted user id=%s", user_id)
        return User(
            id=user_id,
            username=username,
            email=email,
            password_hash=password_hash,
            is_active=True,
            created_at=now,
            updated_at=now,
        )

    def update_refresh_token(self, user_id: int, token: str | None, expires_at: datetime | None) -> None:
        """Overwrite the stored refresh token unconditionally. token=None clears the session."""
        with self.engine.connect() as conn:
            conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(refresh_token=token, token_expires_at=_iso(expires_at))
            )
            conn.commit()

    def rotate_refresh_token(self, user_id: int, old_token: str, new_token: str, expires_at: datetime) -> bool:
        """Replace old_token with new_token only if old_token is still the stored value.

        Returns True if the row was updated, False if the stored token had
        already changed (rotated by a concurrent refresh, or cleared by logout).
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.refresh_token == old_token))
                .values(refresh_token=new_token, token_expires_at=_iso(expires_at))
            )
            conn.commit()
        return result.rowcount > 0

    def update_profile(self, user_id: int, **fields) -> bool:
        """Update username and/or email and stamp updated_at.

        Only keys in _PROFILE_COLUMNS are accepted. Unknown keys raise
        ValueError rather than being silently ignored.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _PROFILE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown profile fields: {unknown!r}")
        if not fields:
            raise ValueError("No profile fields to update.")
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update().where(_users.c.id == user_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def set_active(self, user_id: int, is_active: bool) -> bool:
        """Enable or disable login for a user. Returns False if user_id was not found."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(is_active=1 if is_active else 0, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        refresh_token=row.refresh_token,
        token_expires_at=row.token_expires_at,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
