"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container). Stores and services do the work;
the only logic here is role parsing and sanitization, because both must be
identical at every boundary that uses them.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from auth.errors import InvalidRoleError


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


def parse_role(raw: str | Role | None, default: Role | None = None) -> Role | None:
    """Normalize a role coming from outside (JSON body, query string, CLI).

    Trims and lower-cases the value. An empty or missing value returns
    ``default``; anything other than a known role raises InvalidRoleError.
    """
    if isinstance(raw, Role):
        return raw
    value = (raw or "").strip().lower()
    if not value:
        return default
    try:
        return Role(value)
    except ValueError as exc:
        raise InvalidRoleError() from exc


@dataclass
class User:
    """An account record as persisted by the UserStore.

    password_hash is None only on sanitized copies -- every persisted row has
    one. Timestamps are timezone-aware UTC datetimes.
    """

    email: str
    name: str = ""
    role: Role = Role.USER
    id: str | None = None
    password_hash: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class Credentials:
    """Login input. Never persisted."""

    email: str
    password: str


@dataclass(frozen=True)
class UserFilter:
    role: Role | None = None


def sanitize_user(user: User) -> User:
    """Return a copy of ``user`` with secret material removed.

    The single place that decides what leaves the service boundary. Both the
    authentication and the administration services go through it.
    """
    return replace(user, password_hash=None)


def sanitize_users(users: list[User]) -> list[User]:
    return [sanitize_user(u) for u in users]
