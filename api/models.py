"""
API request and response models for the backoffice REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Role fields are plain strings here, not an Enum: role validation belongs to
auth.models.parse_role() so an unknown role yields the domain's invalid_role
error (400) rather than a generic 422.

Separation of concerns: auth/ models = domain truth; api/ models = API contract.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import User
from auth.passwords import MAX_PASSWORD_BYTES, exceeds_password_limit


def _check_password_bytes(value: str) -> str:
    """bcrypt reads at most 72 bytes; a character count alone lets multi-byte input through."""
    if exceeds_password_limit(value):
        raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Empty strings are allowed through so the service can answer with its own
    validation_error instead of a schema error.
    """

    email: str = Field(default="", max_length=255)
    password: str = ""
    name: str = Field(default="", max_length=255)

    @field_validator("password")
    @classmethod
    def password_fits(cls, v: str) -> str:
        return _check_password_bytes(v)


class LoginRequest(BaseModel):
    email: str = Field(default="", max_length=255)
    password: str = ""

    @field_validator("password")
    @classmethod
    def password_fits(cls, v: str) -> str:
        return _check_password_bytes(v)


class RenewRequest(BaseModel):
    token: str = ""


class ChangePasswordRequest(BaseModel):
    current_password: str = ""
    new_password: str = ""

    @field_validator("current_password", "new_password")
    @classmethod
    def passwords_fit(cls, v: str) -> str:
        return _check_password_bytes(v)


class RoleRequest(BaseModel):
    role: str = Field(default="", max_length=20)


class UserCreateRequest(BaseModel):
    """Request body for POST /api/v1/admin/users. Role defaults to "user"."""

    email: str = Field(default="", max_length=255)
    password: str = ""
    name: str = Field(default="", max_length=255)
    role: Optional[str] = Field(default=None, max_length=20)

    @field_validator("password")
    @classmethod
    def password_fits(cls, v: str) -> str:
        return _check_password_bytes(v)


class UserUpdateRequest(BaseModel):
    """Partial update. Omitted (null) fields are left unchanged."""

    email: Optional[str] = Field(default=None, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    role: Optional[str] = Field(default=None, max_length=20)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Outward view of an account. There is no password field to leak."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Factory Method -- the mapping lives beside the output model."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role.value,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserResponse


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[UserResponse]


class TokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int


class LoginResponse(TokenResponse):
    user: UserResponse


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
