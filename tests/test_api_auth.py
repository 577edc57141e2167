"""HTTP tests for api/routes/v1/auth.py -- register, login, renew, me, password, own role.

The api_client fixture is module-scoped; tests that mutate an account create
their own rather than touching the seeded admin and user.
"""

import uuid

import pytest
from jose import jwt

from conftest import ApiContext

BASE = "/api/v1"


def _email() -> str:
    return f"u-{uuid.uuid4().hex[:10]}@example.com"


def _register_and_login(ctx: ApiContext, password: str = "secret1") -> tuple[str, str, str]:
    email = _email()
    resp = ctx.client.post(f"{BASE}/auth/register", json={"email": email, "password": password, "name": "Tmp"})
    assert resp.status_code == 201
    login = ctx.client.post(f"{BASE}/auth/login", json={"email": email, "password": password})
    assert login.status_code == 200
    return email, resp.json()["user"]["id"], login.json()["token"]


class TestRegister:
    def test_creates_standard_account(self, api_client: ApiContext):
        email = _email()
        resp = api_client.client.post(
            f"{BASE}/auth/register", json={"email": email.upper(), "password": "secret1", "name": "New"}
        )
        assert resp.status_code == 201
        user = resp.json()["user"]
        assert user["email"] == email
        assert user["role"] == "user"
        assert "password" not in str(user)

    def test_duplicate_email(self, api_client: ApiContext):
        resp = api_client.client.post(f"{BASE}/auth/register", json={"email": "USER@example.com", "password": "x1"})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "email_exists"

    def test_missing_password(self, api_client: ApiContext):
        resp = api_client.client.post(f"{BASE}/auth/register", json={"email": _email()})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_role_in_body_is_ignored(self, api_client: ApiContext):
        resp = api_client.client.post(
            f"{BASE}/auth/register", json={"email": _email(), "password": "secret1", "role": "admin"}
        )
        assert resp.status_code == 201
        assert resp.json()["user"]["role"] == "user"


class TestLogin:
    def test_success(self, api_client: ApiContext):
        resp = api_client.client.post(f"{BASE}/auth/login", json={"email": "user@example.com", "password": "userpass1"})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        body = resp.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 3600
        assert body["user"]["id"] == api_client.user_id
        assert jwt.get_unverified_claims(body["token"])["sub"] == api_client.user_id

    @pytest.mark.parametrize(
        "payload",
        [
            {"email": "user@example.com", "password": "wrong-password"},
            {"email": "nobody@example.com", "password": "userpass1"},
            {"email": "user@example.com", "password": ""},
            {},
        ],
    )
    def test_failures_are_identical(self, api_client: ApiContext, payload):
        resp = api_client.client.post(f"{BASE}/auth/login", json=payload)
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"
        assert resp.json() == {
            "error": {"code": "invalid_credentials", "message": "Invalid email or password.", "detail": None}
        }

    def test_body_schema_error_is_422(self, api_client: ApiContext):
        resp = api_client.client.post(f"{BASE}/auth/login", json={"email": 42, "password": ["x"]})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestMe:
    def test_returns_principal(self, api_client: ApiContext):
        resp = api_client.client.get(f"{BASE}/auth/me", headers=api_client.auth(api_client.admin_token))
        assert resp.status_code == 200
        assert resp.json()["email"] == "admin@example.com"
        assert resp.json()["role"] == "admin"

    def test_lowercase_scheme(self, api_client: ApiContext):
        resp = api_client.client.get(
            f"{BASE}/auth/me", headers={"Authorization": f"bearer {api_client.user_token}"}
        )
        assert resp.status_code == 200

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Basic dXNlcjpwYXNz"}, {"Authorization": "Bearer not-a-token"}],
    )
    def test_unauthenticated(self, api_client: ApiContext, headers):
        resp = api_client.client.get(f"{BASE}/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"


class TestRenew:
    def test_from_header(self, api_client: ApiContext):
        resp = api_client.client.post(f"{BASE}/auth/renew", headers=api_client.auth(api_client.user_token))
        assert resp.status_code == 200
        token = resp.json()["token"]
        assert token != api_client.user_token
        assert jwt.get_unverified_claims(token)["sub"] == api_client.user_id

    def test_from_body(self, api_client: ApiContext):
        resp = api_client.client.post(f"{BASE}/auth/renew", json={"token": api_client.user_token})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"

    def test_missing_token(self, api_client: ApiContext):
        resp = api_client.client.post(f"{BASE}/auth/renew")
        assert resp.status_code == 400

    def test_invalid_token(self, api_client: ApiContext):
        resp = api_client.client.post(f"{BASE}/auth/renew", json={"token": "garbage"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "token_invalid"


class TestChangePassword:
    def test_success(self, api_client: ApiContext):
        email, _user_id, token = _register_and_login(api_client)
        resp = api_client.client.post(
            f"{BASE}/users/change-password",
            json={"current_password": "secret1", "new_password": "secret2"},
            headers=api_client.auth(token),
        )
        assert resp.status_code == 204

        old = api_client.client.post(f"{BASE}/auth/login", json={"email": email, "password": "secret1"})
        new = api_client.client.post(f"{BASE}/auth/login", json={"email": email, "password": "secret2"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_wrong_current(self, api_client: ApiContext):
        _email_, _user_id, token = _register_and_login(api_client)
        resp = api_client.client.post(
            f"{BASE}/users/change-password",
            json={"current_password": "nope", "new_password": "secret2"},
            headers=api_client.auth(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "password_mismatch"

    def test_unchanged(self, api_client: ApiContext):
        _email_, _user_id, token = _register_and_login(api_client)
        resp = api_client.client.post(
            f"{BASE}/users/change-password",
            json={"current_password": "secret1", "new_password": "secret1"},
            headers=api_client.auth(token),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "password_unchanged"

    def test_requires_auth(self, api_client: ApiContext):
        resp = api_client.client.post(
            f"{BASE}/users/change-password", json={"current_password": "a", "new_password": "b"}
        )
        assert resp.status_code == 401


class TestOwnRole:
    def test_get(self, api_client: ApiContext):
        resp = api_client.client.get(f"{BASE}/users/me/role", headers=api_client.auth(api_client.user_token))
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "user"

    def test_user_cannot_escalate(self, api_client: ApiContext):
        _email_, user_id, token = _register_and_login(api_client)
        resp = api_client.client.put(f"{BASE}/users/me/role", json={"role": "admin"}, headers=api_client.auth(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"
        assert api_client.store.get_by_id(user_id).role.value == "user"

    def test_admin_may_set_own_role_to_admin(self, api_client: ApiContext):
        resp = api_client.client.put(
            f"{BASE}/users/me/role", json={"role": "admin"}, headers=api_client.auth(api_client.admin_token)
        )
        assert resp.status_code == 200
        assert resp.json()["user"]["id"] == api_client.admin_id
        assert resp.json()["user"]["role"] == "admin"

    def test_invalid_role(self, api_client: ApiContext):
        resp = api_client.client.patch(
            f"{BASE}/users/me/role", json={"role": "owner"}, headers=api_client.auth(api_client.user_token)
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_role"

    def test_empty_role(self, api_client: ApiContext):
        resp = api_client.client.put(
            f"{BASE}/users/me/role", json={"role": ""}, headers=api_client.auth(api_client.user_token)
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"


def test_deleted_account_tokens_stop_working(api_client: ApiContext):
    _email_, user_id, token = _register_and_login(api_client)
    renewed = api_client.client.post(f"{BASE}/auth/renew", headers=api_client.auth(token)).json()["token"]

    api_client.store.delete(user_id)

    for t in (token, renewed):
        assert api_client.client.get(f"{BASE}/auth/me", headers=api_client.auth(t)).status_code == 401
        assert api_client.client.post(f"{BASE}/auth/renew", headers=api_client.auth(t)).status_code == 401


class TestPasswordByteLimit:
    """36 two-byte characters already fill bcrypt's 72 bytes; one more is refused."""

    LONG = "é" * 36 + "A"

    def test_register_rejects(self, api_client: ApiContext):
        email = _email()
        resp = api_client.client.post(f"{BASE}/auth/register", json={"email": email, "password": self.LONG})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert api_client.client.post(f"{BASE}/auth/login", json={"email": email, "password": "é" * 36}).status_code == 401

    def test_login_with_shared_prefix_fails(self, api_client: ApiContext):
        email = _email()
        resp = api_client.client.post(f"{BASE}/auth/register", json={"email": email, "password": "é" * 36})
        assert resp.status_code == 201

        wrong = api_client.client.post(f"{BASE}/auth/login", json={"email": email, "password": "é" * 36 + "ZZZ"})
        assert wrong.status_code == 422
        right = api_client.client.post(f"{BASE}/auth/login", json={"email": email, "password": "é" * 36})
        assert right.status_code == 200

    def test_change_password_rejects_long_new(self, api_client: ApiContext):
        _email_, _user_id, token = _register_and_login(api_client)
        resp = api_client.client.post(
            f"{BASE}/users/change-password",
            json={"current_password": "secret1", "new_password": "x" * 72 + "new"},
            headers=api_client.auth(token),
        )
        assert resp.status_code == 422

    def test_admin_create_rejects(self, api_client: ApiContext):
        resp = api_client.client.post(
            f"{BASE}/admin/users",
            json={"email": _email(), "password": self.LONG},
            headers=api_client.auth(api_client.admin_token),
        )
        assert resp.status_code == 422
