"""
auth/users.py -- Privileged account management.

Callers reach this service only after the Authorization Gate has confirmed
an admin principal (auth.dependencies.require_admin). The one exception is
assign_role(), which also backs the self-service "change my role" route and
therefore carries its own escalation check: only an existing admin may grant
the admin role.

Every role string from outside goes through models.parse_role(). Every
returned account goes through models.sanitize_user().
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from auth.errors import EmailExistsError, ForbiddenError, UserNotFoundError, ValidationError
from auth.models import Role, User, UserFilter, parse_role, sanitize_user, sanitize_users
from auth.passwords import MAX_PASSWORD_BYTES, exceeds_password_limit, hash_password
from auth.service import normalize_email
from auth.store import UserRepository

logger = logging.getLogger("backoffice.auth.users")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_id(user_id: str | None) -> str:
    user_id = (user_id or "").strip()
    if not user_id:
        raise ValidationError("user id is required")
    return user_id


def ensure_can_assign_role(actor: User, role: Role) -> None:
    """Reject a non-admin actor granting the admin role (to anyone, self included)."""
    if role == Role.ADMIN and not actor.is_admin:
        logger.warning("User %s attempted to assign the admin role", actor.id)
        raise ForbiddenError("insufficient privileges to assign admin role")


@dataclass(frozen=True)
class UserCreate:
    email: str
    password: str
    name: str = ""
    role: str | None = None


@dataclass(frozen=True)
class UserUpdate:
    """Partial update. None means "leave unchanged"."""

    email: str | None = None
    name: str | None = None
    role: str | None = None


class UserAdminService:
    def __init__(self, users: UserRepository, clock: Callable[[], datetime] | None = None) -> None:
        self.users = users
        self._now = clock or _utcnow

    def list(self, role: str | None = None) -> list[User]:
        """All accounts newest first; ``role`` narrows the result. Unknown role -> InvalidRoleError."""
        user_filter = UserFilter(role=parse_role(role))
        return sanitize_users(self.users.list_users(user_filter))

    def get(self, user_id: str) -> User:
        return sanitize_user(self.users.get_by_id(_require_id(user_id)))

    def create(self, data: UserCreate) -> User:
        email = normalize_email(data.email)
        password = (data.password or "").strip()
        if not email:
            raise ValidationError("email is required")
        if not password:
            raise ValidationError("password is required")
        if exceeds_password_limit(password):
            raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        role = parse_role(data.role, default=Role.USER)

        try:
            self.users.get_by_email(email)
        except UserNotFoundError:
            pass
        else:
            raise EmailExistsError()

        now = self._now()
        user = User(
            id=str(uuid.uuid4()),
            email=email,
            name=(data.name or "").strip(),
            role=role,
            password_hash=hash_password(password),
            created_at=now,
            updated_at=now,
        )
        self.users.create(user)
        logger.info("Created user %s with role %s", user.id, role.value)
        return sanitize_user(user)

    def update(self, user_id: str, data: UserUpdate) -> User:
        user = self.users.get_by_id(_require_id(user_id))

        if data.email is not None:
            email = normalize_email(data.email)
            if not email:
                raise ValidationError("email is required")
            user.email = email
        if data.name is not None:
            user.name = data.name.strip()
        if data.role is not None:
            # An empty role string keeps the current one.
            user.role = parse_role(data.role, default=user.role)

        user.updated_at = self._now()
        self.users.update(user)
        logger.info("Updated user %s", user.id)
        return sanitize_user(user)

    def assign_role(self, actor: User, user_id: str, role: str) -> User:
        """Set ``user_id``'s role on behalf of ``actor``.

        Raises ValidationError for an empty role, InvalidRoleError for an
        unknown one, and ForbiddenError when a non-admin tries to grant admin.
        """
        parsed = parse_role(role)
        if parsed is None:
            raise ValidationError("role is required")
        ensure_can_assign_role(actor, parsed)
        return self.update(user_id, UserUpdate(role=parsed.value))

    def delete(self, user_id: str) -> None:
        user_id = _require_id(user_id)
        self.users.delete(user_id)
        logger.info("Deleted user %s", user_id)
