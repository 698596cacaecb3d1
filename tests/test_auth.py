"""Admin authentication API tests.

Covers login against the configured operator account, refresh, and the
JWT / API key admin dependency.
"""

from __future__ import annotations

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.app.api.errors import register_exception_handlers
from src.app.core.security import create_access_token, create_refresh_token, hash_password

ADMIN = "booker@example.com"
PASSWORD = "s3cure-pass-phrase"


@pytest.fixture
def admin_env(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", ADMIN)
    monkeypatch.setenv("ADMIN_PASSWORD_HASH", hash_password(PASSWORD))
    monkeypatch.setenv("ADMIN_API_KEY", "ops-api-key")


@pytest_asyncio.fixture
async def client(admin_env):
    from src.app.api.v1.auth import router

    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router, prefix="/api/v1")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def test_login_valid_credentials(client):
    response = await client.post(
        "/api/v1/auth/login", json={"email": ADMIN, "password": PASSWORD}
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["token_type"] == "bearer"

    me = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"}
    )
    assert me.status_code == 200
    assert me.json() == {"email": ADMIN, "role": "admin", "auth_method": "jwt"}


async def test_login_email_is_case_insensitive(client):
    response = await client.post(
        "/api/v1/auth/login", json={"email": ADMIN.upper(), "password": PASSWORD}
    )
    assert response.status_code == 200


async def test_login_wrong_password(client):
    response = await client.post(
        "/api/v1/auth/login", json={"email": ADMIN, "password": "nope"}
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "auth_error"


async def test_login_unknown_email(client):
    response = await client.post(
        "/api/v1/auth/login", json={"email": "someone@example.com", "password": PASSWORD}
    )
    assert response.status_code == 401


async def test_refresh_issues_new_pair(client):
    refresh = create_refresh_token({"sub": ADMIN, "role": "admin"})
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
    assert response.status_code == 200
    assert response.json()["access_token"]


async def test_refresh_rejects_access_token(client):
    access = create_access_token({"sub": ADMIN, "role": "admin"})
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": access})
    assert response.status_code == 401


async def test_refresh_rejects_stale_subject(client):
    refresh = create_refresh_token({"sub": "former@example.com", "role": "admin"})
    response = await client.post("/api/v1/auth/refresh", json={"refresh_token": refresh})
    assert response.status_code == 401


async def test_me_with_api_key(client):
    response = await client.get("/api/v1/auth/me", headers={"X-API-Key": "ops-api-key"})
    assert response.status_code == 200
    assert response.json()["auth_method"] == "api_key"
    assert response.json()["email"] == ADMIN


async def test_me_with_wrong_api_key(client):
    response = await client.get("/api/v1/auth/me", headers={"X-API-Key": "guess"})
    assert response.status_code == 401


async def test_me_without_credentials(client):
    response = await client.get("/api/v1/auth/me")
    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Not authenticated"


async def test_me_rejects_non_admin_role(client):
    token = create_access_token({"sub": ADMIN, "role": "viewer"})
    response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
