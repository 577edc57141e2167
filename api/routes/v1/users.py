"""
api/routes/v1/users.py -- User administration endpoints (admin only).

Routes:
  GET       /api/v1/admin/users?role=       -- list accounts, newest first
  POST      /api/v1/admin/users             -- create account (role defaults to "user")
  GET       /api/v1/admin/users/{id}        -- account detail
  PUT/PATCH /api/v1/admin/users/{id}        -- partial update: email, name, role
  DELETE    /api/v1/admin/users/{id}        -- delete; outstanding tokens die with it
  GET       /api/v1/admin/users/{id}/role   -- account (role view)
  PUT/PATCH /api/v1/admin/users/{id}/role   -- assign role

Every route depends on require_admin: 401 without a valid token, 403 for a
non-admin principal. Domain errors (invalid_role, email_exists,
user_not_found ...) are rendered by the AuthError handler in api/main.py.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from api.models import RoleRequest, UserCreateRequest, UserEnvelope, UserListResponse, UserResponse, UserUpdateRequest
from auth.dependencies import require_admin
from auth.models import User
from auth.users import UserAdminService, UserCreate, UserUpdate

router = APIRouter()


def _service(request: Request) -> UserAdminService:
    return request.app.state.user_service


@router.get("/admin/users", response_model=UserListResponse)
def list_users(
    request: Request,
    role: Optional[str] = None,
    current_user: User = Depends(require_admin),
) -> UserListResponse:
    users = _service(request).list(role)
    return UserListResponse(users=[UserResponse.from_user(u) for u in users])


@router.post("/admin/users", response_model=UserEnvelope, status_code=201)
def create_user(
    request: Request,
    body: UserCreateRequest,
    current_user: User = Depends(require_admin),
) -> UserEnvelope:
    user = _service(request).create(
        UserCreate(email=body.email, password=body.password, name=body.name, role=body.role)
    )
    return UserEnvelope(user=UserResponse.from_user(user))


@router.get("/admin/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: str, current_user: User = Depends(require_admin)) -> UserResponse:
    return UserResponse.from_user(_service(request).get(user_id))


@router.api_route("/admin/users/{user_id}", methods=["PUT", "PATCH"], response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserUpdateRequest,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    user = _service(request).update(user_id, UserUpdate(email=body.email, name=body.name, role=body.role))
    return UserResponse.from_user(user)


@router.delete("/admin/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: str, current_user: User = Depends(require_admin)) -> Response:
    _service(request).delete(user_id)
    return Response(status_code=204)


@router.get("/admin/users/{user_id}/role", response_model=UserEnvelope)
def get_user_role(request: Request, user_id: str, current_user: User = Depends(require_admin)) -> UserEnvelope:
    return UserEnvelope(user=UserResponse.from_user(_service(request).get(user_id)))


@router.api_route("/admin/users/{user_id}/role", methods=["PUT", "PATCH"], response_model=UserEnvelope)
def set_user_role(
    request: Request,
    user_id: str,
    body: RoleRequest,
    current_user: User = Depends(require_admin),
) -> UserEnvelope:
    user = _service(request).assign_role(current_user, user_id, body.role)
    return UserEnvelope(user=UserResponse.from_user(user))
