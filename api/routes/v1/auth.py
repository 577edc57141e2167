"""
api/routes/v1/auth.py -- Authentication and self-service account endpoints.

Routes:
  POST      /api/v1/auth/register          -- create a standard account (public)
  POST      /api/v1/auth/login             -- email/password login; returns a bearer token
  POST      /api/v1/auth/renew             -- exchange a valid token for a fresh one
  GET       /api/v1/auth/me                -- current principal (requires auth)
  POST      /api/v1/users/change-password  -- change own password (requires auth)
  GET       /api/v1/users/me/role          -- current principal (requires auth)
  PUT/PATCH /api/v1/users/me/role          -- change own role (requires auth, escalation-guarded)

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  Login answers the same invalid_credentials error for unknown email, wrong
      password and empty fields. Cache-Control: no-store on token responses.
  change-password always targets the authenticated principal's own id.
  me/role: a non-admin asking for "admin" gets 403 before anything is written.

Handlers are sync (def) -- FastAPI runs them in its thread pool, matching the
synchronous UserStore.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RenewRequest,
    RoleRequest,
    TokenResponse,
    UserEnvelope,
    UserResponse,
)
from auth.dependencies import extract_bearer_token, get_current_user
from auth.errors import ForbiddenError, ValidationError
from auth.models import Credentials, User
from auth.service import AuthService
from auth.users import UserAdminService
from core.config import get_settings

# Auth policy:
# - POST /auth/register, /auth/login, /auth/renew: public (renew verifies the token itself)
# - everything else: requires auth (get_current_user)
router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserEnvelope, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserEnvelope:
    """Create a standard ("user" role) account.

    Disabled with SELF_REGISTRATION_ENABLED=false; admins can still create
    accounts through /admin/users.
    """
    if not get_settings().self_registration_enabled:
        raise ForbiddenError("self-registration is disabled")
    auth_service: AuthService = request.app.state.auth_service
    user = auth_service.register(body.email, body.password, body.name)
    return UserEnvelope(user=UserResponse.from_user(user))


@limiter.limit(_login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token and the account."""
    auth_service: AuthService = request.app.state.auth_service
    token, user = auth_service.login(Credentials(email=body.email, password=body.password))
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=auth_service.tokens.lifetime_seconds,
            user=UserResponse.from_user(user),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/renew", response_model=TokenResponse)
def renew(request: Request, body: Optional[RenewRequest] = None) -> JSONResponse:
    """Issue a fresh token. The current one comes from the Bearer header or the JSON body."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if not token and body is not None:
        token = body.token.strip()
    if not token:
        raise ValidationError("token required")

    auth_service: AuthService = request.app.state.auth_service
    new_token = auth_service.renew_token(token)
    resp = JSONResponse(
        status_code=200,
        content=TokenResponse(token=new_token, expires_in=auth_service.tokens.lifetime_seconds).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the currently authenticated account."""
    return UserResponse.from_user(current_user)


@router.post("/users/change-password", status_code=204)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> Response:
    auth_service: AuthService = request.app.state.auth_service
    auth_service.change_password(current_user.id, body.current_password, body.new_password)
    return Response(status_code=204)


@router.get("/users/me/role", response_model=UserEnvelope)
def get_my_role(current_user: User = Depends(get_current_user)) -> UserEnvelope:
    return UserEnvelope(user=UserResponse.from_user(current_user))


@router.api_route("/users/me/role", methods=["PUT", "PATCH"], response_model=UserEnvelope)
def set_my_role(
    request: Request,
    body: RoleRequest,
    current_user: User = Depends(get_current_user),
) -> UserEnvelope:
    """Change the caller's own role. Only an admin may hold or grant "admin"."""
    user_service: UserAdminService = request.app.state.user_service
    user = user_service.assign_role(current_user, current_user.id, body.role)
    return UserEnvelope(user=UserResponse.from_user(user))
