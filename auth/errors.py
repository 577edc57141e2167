"""
auth/errors.py -- Typed outcomes for every business rejection in auth/.

Services raise these; the HTTP layer (api/main.py) maps each class to a status
code. Each class carries a stable machine-readable ``code`` and a default
human-readable ``message`` so the envelope is identical wherever it is raised.

TokenInvalidError and InvalidCredentialsError are deliberately coarse. The
codec and the login path log the specific cause internally, but callers only
ever see one outcome (no expired/malformed/bad-signature oracle, no
wrong-email/wrong-password oracle).

Storage transport errors are NOT part of this taxonomy. They propagate as
whatever the driver raised (sqlalchemy.exc.*) so callers can tell
infrastructure failure from business rejection.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for auth domain errors."""

    code = "auth_error"
    message = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed or missing input, local to the call."""

    code = "validation_error"
    message = "Invalid input."


class InvalidCredentialsError(AuthError):
    code = "invalid_credentials"
    message = "Invalid email or password."


class EmailExistsError(AuthError):
    code = "email_exists"
    message = "Email already registered."


class UserNotFoundError(AuthError):
    code = "user_not_found"
    message = "User not found."


class TokenInvalidError(AuthError):
    code = "token_invalid"
    message = "Token invalid or expired."


class InvalidRoleError(AuthError):
    code = "invalid_role"
    message = "Invalid role."


class PasswordMismatchError(AuthError):
    code = "password_mismatch"
    message = "Current password does not match."


class PasswordUnchangedError(AuthError):
    code = "password_unchanged"
    message = "New password must be different from current password."


class ForbiddenError(AuthError):
    """Authenticated, but the principal lacks the required privilege."""

    code = "forbidden"
    message = "Insufficient privileges."


class UnauthenticatedError(AuthError):
    """No bearer token, or one that did not verify."""

    code = "unauthorized"
    message = "Authentication required."
