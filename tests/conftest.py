"""
tests/conftest.py -- Shared test fixtures for backoffice tests.

This module provides:
  - store: a fresh in-memory UserStore per test
  - codec / auth_service / user_service: core objects over that store
  - api_client: TestClient over the real app with a patched lifespan, plus
    tokens for a seeded admin and a seeded standard user

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for the
HTTP fixture because TestClient runs route handlers in a thread pool. The named
URI format (file:name?mode=memory&cache=shared&uri=true) shares one in-memory
instance across all connections in the same process.

The DEBUG env var must be set before any app module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, build_services
from auth.models import Role
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec, TokenConfig
from auth.users import UserAdminService, UserCreate

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"
TEST_ISSUER = "backoffice-test"


def make_codec(secret: str = TEST_SECRET, issuer: str = TEST_ISSUER, lifetime: timedelta = timedelta(hours=1), **kw):
    return TokenCodec(TokenConfig(secret=secret, issuer=issuer, lifetime=lifetime), **kw)


# ---------------------------------------------------------------------------
# Core fixtures -- one isolated in-memory store per test
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def codec() -> TokenCodec:
    return make_codec()


@pytest.fixture
def auth_service(store: UserStore, codec: TokenCodec) -> AuthService:
    return AuthService(store, codec)


@pytest.fixture
def user_service(store: UserStore) -> UserAdminService:
    return UserAdminService(store)


# ---------------------------------------------------------------------------
# HTTP fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    store: UserStore
    codec: TokenCodec
    admin_id: str
    admin_token: str
    user_id: str
    user_token: str

    def auth(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}


def _patch_lifespan(store: UserStore, codec: TokenCodec):
    """Return a lifespan that wires the test store and codec into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        build_services(app, store, codec)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext with a seeded admin (admin@example.com / adminpass1)
    and a seeded user (user@example.com / userpass1)."""
    db_name = f"test_auth_{uuid.uuid4().hex}"
    store = UserStore(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    codec = make_codec()

    seeder = UserAdminService(store)
    admin = seeder.create(UserCreate(email="admin@example.com", password="adminpass1", name="Admin", role="admin"))
    user = seeder.create(UserCreate(email="user@example.com", password="userpass1", name="User"))
    assert admin.role == Role.ADMIN

    app.router.lifespan_context = _patch_lifespan(store, codec)
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiContext(
            client=client,
            store=store,
            codec=codec,
            admin_id=admin.id,
            admin_token=codec.issue(admin.id),
            user_id=user.id,
            user_token=codec.issue(user.id),
        )

    limiter.enabled = True
    store.close()
