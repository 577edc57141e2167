"""
auth/dependencies.py -- FastAPI Depends() helpers: the Authorization Gate.

One auth method: Authorization: Bearer <token>. The scheme is matched
case-insensitively ("bearer", "BEARER" ...). A missing header, a different
scheme, or an empty token is unauthenticated; so is any token that
AuthService.verify_token() rejects.

get_current_user() resolves the principal, stores it on request.state.user
for downstream handlers, and raises UnauthenticatedError (401).
require_admin() wraps get_current_user() and raises ForbiddenError (403) if
the principal is not an admin. It is applied per route, never globally.

Both errors are AuthError subclasses; api/main.py renders them in the common
error envelope.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.errors import ForbiddenError, TokenInvalidError, UnauthenticatedError
from auth.models import User
from auth.service import AuthService

logger = logging.getLogger("backoffice.auth.gate")

_BEARER_PREFIX = "bearer "


def extract_bearer_token(header: str | None) -> str:
    """Return the token from an Authorization header value, or "" if absent."""
    if not header:
        return ""
    if header[: len(_BEARER_PREFIX)].lower() != _BEARER_PREFIX:
        return ""
    return header[len(_BEARER_PREFIX) :].strip()


def ensure_admin(user: User) -> User:
    """Raise ForbiddenError unless ``user`` holds the admin role."""
    if not user.is_admin:
        raise ForbiddenError("admin privileges required")
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. Raises UnauthenticatedError (401) on any failure.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        raise UnauthenticatedError("authorization token required")

    auth_service: AuthService = request.app.state.auth_service
    try:
        user = auth_service.verify_token(token)
    except TokenInvalidError:
        raise UnauthenticatedError("invalid or expired token") from None

    request.state.user = user
    return user


def require_admin(request: Request) -> User:
    """Require admin role. Raises 401 if unauthenticated, 403 if not admin.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        def route(user: User = Depends(require_admin)): ...
    """
    return ensure_admin(get_current_user(request))
