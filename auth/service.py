"""
auth/service.py -- Registration, login, token verification/renewal, password change.

Stateless: no session table, no revocation list. A token is valid while its
signature verifies, it has not expired, and its subject still exists in the
store. Deleting an account therefore invalidates every outstanding token for
it at the next check.

Non-distinguishability:
  login() raises the same InvalidCredentialsError for an unknown email, a
  wrong password, and an empty field. bcrypt runs in every branch that reaches
  the store so response time does not reveal which case occurred.

  verify_token() raises the same TokenInvalidError for any codec rejection and
  for a subject that no longer exists.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from auth.errors import (
    EmailExistsError,
    InvalidCredentialsError,
    PasswordMismatchError,
    PasswordUnchangedError,
    TokenInvalidError,
    UserNotFoundError,
    ValidationError,
)
from auth.models import Credentials, Role, User, sanitize_user
from auth.passwords import (
    DUMMY_HASH,
    MAX_PASSWORD_BYTES,
    exceeds_password_limit,
    hash_password,
    verify_password,
)
from auth.store import UserRepository
from auth.tokens import TokenCodec

logger = logging.getLogger("backoffice.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Authentication workflows over a UserRepository and a TokenCodec."""

    def __init__(
        self,
        users: UserRepository,
        tokens: TokenCodec,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.users = users
        self.tokens = tokens
        self._now = clock or _utcnow

    # ------------------------------------------------------------------
    # Registration / login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str = "") -> User:
        """Create a standard account and return it sanitized.

        Raises ValidationError for an empty email or password and
        EmailExistsError if the (normalized) email is taken -- whether the
        pre-check sees it or the store's UNIQUE constraint does.
        """
        email = normalize_email(email)
        password = (password or "").strip()
        if not email:
            raise ValidationError("email is required")
        if not password:
            raise ValidationError("password is required")
        if exceeds_password_limit(password):
            raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")

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
            name=(name or "").strip(),
            role=Role.USER,
            password_hash=hash_password(password),
            created_at=now,
            updated_at=now,
        )
        self.users.create(user)
        logger.info("Registered user %s", user.id)
        return sanitize_user(user)

    def login(self, credentials: Credentials) -> tuple[str, User]:
        """Return (token, sanitized user) for valid credentials."""
        email = normalize_email(credentials.email)
        password = (credentials.password or "").strip()
        if not email or not password:
            raise InvalidCredentialsError()
        if exceeds_password_limit(password):
            # Cannot match any stored hash; still pay one bcrypt round.
            verify_password("", DUMMY_HASH)
            raise InvalidCredentialsError()

        try:
            user = self.users.get_by_email(email)
        except UserNotFoundError:
            # Equalize timing -- do NOT return before running bcrypt.
            verify_password(password, DUMMY_HASH)
            raise InvalidCredentialsError() from None

        if not verify_password(password, user.password_hash or DUMMY_HASH):
            raise InvalidCredentialsError()

        token = self.tokens.issue(user.id)
        logger.info("Login succeeded for user %s", user.id)
        return token, sanitize_user(user)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def verify_token(self, token: str) -> User:
        """Resolve a bearer token to its (sanitized) account."""
        subject = self.tokens.verify(token)
        try:
            user = self.users.get_by_id(subject)
        except UserNotFoundError:
            logger.info("Token rejected: subject %s no longer exists", subject)
            raise TokenInvalidError() from None
        return sanitize_user(user)

    def renew_token(self, token: str) -> str:
        """Issue a fresh token for the subject of a still-valid token.

        Goes through verify_token(), so a deleted account cannot renew. The
        new token carries only the subject; role and profile are re-read from
        the store on every verification, never cached in the token.
        """
        user = self.verify_token(token)
        return self.tokens.issue(user.id)

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """Replace the caller's password.

        The caller must already be authenticated as ``user_id``; the route
        layer passes the principal's own id, never one from the request body.
        """
        user_id = (user_id or "").strip()
        current_password = (current_password or "").strip()
        new_password = (new_password or "").strip()
        if not user_id:
            raise ValidationError("user id is required")
        if not current_password or not new_password:
            raise ValidationError("current_password and new_password are required")
        if exceeds_password_limit(new_password):
            raise ValidationError(f"new_password must be at most {MAX_PASSWORD_BYTES} bytes")

        user = self.users.get_by_id(user_id)
        if not verify_password(current_password, user.password_hash or DUMMY_HASH):
            raise PasswordMismatchError()
        if verify_password(new_password, user.password_hash or DUMMY_HASH):
            raise PasswordUnchangedError()

        self.users.update_password(user.id, hash_password(new_password), self._now())
        logger.info("Password changed for user %s", user.id)
