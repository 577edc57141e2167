"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user is
the mapper. Services never touch SQL directly -- they depend on the
UserRepository protocol, which UserStore satisfies.

Outcomes:
  Every method either succeeds or raises one of
    - UserNotFoundError   (no row for the id / email)
    - EmailExistsError    (UNIQUE(email) violated on insert or update)
    - sqlalchemy.exc.SQLAlchemyError (transport failure, propagated unchanged)

  The UNIQUE constraint on email is the authority for uniqueness. The
  services' lookup-before-insert only narrows the race window; two concurrent
  registrations for the same address still end with exactly one row and one
  EmailExistsError.

Deadlines:
  pool_timeout bounds the wait for a pooled connection; on SQLite the driver
  timeout bounds the wait for the database lock. Both come from
  DB_TIMEOUT_SECONDS. No retries here -- a failed call surfaces immediately.

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import EmailExistsError, UserNotFoundError
from auth.models import Role, User, UserFilter
from core.config import get_settings

logger = logging.getLogger("backoffice.store")

# ---------------------------------------------------------------------------
# Repository contract
# ---------------------------------------------------------------------------


class UserRepository(Protocol):
    def create(self, user: User) -> None: ...

    def get_by_email(self, email: str) -> User: ...

    def get_by_id(self, user_id: str) -> User: ...

    def list_users(self, user_filter: UserFilter) -> list[User]: ...

    def update(self, user: User) -> None: ...

    def delete(self, user_id: str) -> None: ...

    def update_password(self, user_id: str, password_hash: str, updated_at: datetime) -> None: ...


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),  # stored lower-case
    Column("name", String(255), nullable=False, server_default=""),
    Column("role", String(20), nullable=False, server_default=Role.USER.value),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),  # ISO 8601 UTC
    Column("updated_at", String(32), nullable=False),
)


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


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User accounts.

    Usage:
        store = UserStore()
        store.create(User(id=str(uuid4()), email="a@example.com", password_hash=..., ...))
        user = store.get_by_email("a@example.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None, timeout: float | None = None) -> None:
        if not db_url or timeout is None:
            settings = get_settings()
            db_url = db_url or settings.sqlalchemy_url
            timeout = settings.db_timeout_seconds if timeout is None else timeout

        engine_kwargs: dict = {}
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
            if db_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every checkout sees a blank DB.
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_timeout"] = timeout
            engine_kwargs["pool_pre_ping"] = True
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user: User) -> None:
        """Insert a new account. Raises EmailExistsError on a duplicate email."""
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        email=user.email,
                        name=user.name,
                        role=user.role.value,
                        password_hash=user.password_hash,
                        created_at=_to_iso(user.created_at),
                        updated_at=_to_iso(user.updated_at),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            if self._is_email_conflict(exc):
                logger.info("Insert rejected by UNIQUE(email)")
                raise EmailExistsError() from exc
            raise

    def update(self, user: User) -> None:
        """Persist email, name, role and updated_at. The password hash is untouched."""
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.update()
                    .where(_users.c.id == user.id)
                    .values(
                        email=user.email,
                        name=user.name,
                        role=user.role.value,
                        updated_at=_to_iso(user.updated_at),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            if self._is_email_conflict(exc):
                raise EmailExistsError() from exc
            raise
        if result.rowcount == 0:
            raise UserNotFoundError()

    def update_password(self, user_id: str, password_hash: str, updated_at: datetime) -> None:
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user_id)
                .values(password_hash=password_hash, updated_at=_to_iso(updated_at))
            )
            conn.commit()
        if result.rowcount == 0:
            raise UserNotFoundError()

    def delete(self, user_id: str) -> None:
        """Permanently delete an account. There is no soft delete."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        if result.rowcount == 0:
            raise UserNotFoundError()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> User:
        """Exact match on the stored (already lower-cased) email."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        if row is None:
            raise UserNotFoundError()
        return _row_to_user(row)

    def get_by_id(self, user_id: str) -> User:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        if row is None:
            raise UserNotFoundError()
        return _row_to_user(row)

    def list_users(self, user_filter: UserFilter) -> list[User]:
        """Return accounts newest first, optionally narrowed to one role."""
        query = _users.select()
        if user_filter.role is not None:
            query = query.where(_users.c.role == user_filter.role.value)
        query = query.order_by(_users.c.created_at.desc(), _users.c.id)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user(r) for r in rows]

    def ping(self) -> bool:
        """Cheap liveness probe used by the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(_users.select().limit(1)).fetchall()
        return True

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _is_email_conflict(exc: IntegrityError) -> bool:
        # SQLite: "UNIQUE constraint failed: users.email"
        # PostgreSQL: 'duplicate key value violates unique constraint "users_email_key"'
        text = str(exc.orig).lower()
        return "email" in text and ("unique" in text or "duplicate" in text)


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        role=Role(row.role),
        password_hash=row.password_hash,
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )
