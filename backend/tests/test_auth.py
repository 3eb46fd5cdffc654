"""
Tests for accounts: registration, login, roles and token handling.
"""

import jwt
import pytest
from httpx import AsyncClient
from sqlalchemy import update

from app.core.config import get_settings
from app.models.user import User


def signup(email="new@example.com", username="newuser", password="securepassword123") -> dict:
    return {"email": email, "username": username, "password": password}


@pytest.mark.asyncio
async def test_register_user(client: AsyncClient):
    response = await client.post("/api/v1/auth/register", json=signup())
    assert response.status_code == 201
    data = response.json()
    assert data["email"] == "new@example.com"
    assert data["role"] == "user"
    assert "hashed_password" not in data


@pytest.mark.asyncio
async def test_register_ignores_role_in_body(client: AsyncClient):
    body = signup()
    body["role"] = "admin"
    response = await client.post("/api/v1/auth/register", json=body)
    assert response.status_code == 201
    assert response.json()["role"] == "user"


@pytest.mark.asyncio
async def test_register_admin_email_gets_admin_role(client: AsyncClient, monkeypatch):
    monkeypatch.setattr(get_settings(), "ADMIN_EMAILS", ["Boss@Example.com"])
    response = await client.post("/api/v1/auth/register", json=signup("boss@example.com", "boss"))
    assert response.status_code == 201
    assert response.json()["role"] == "admin"


@pytest.mark.asyncio
async def test_login_promotes_listed_email(client: AsyncClient, test_user, monkeypatch):
    monkeypatch.setattr(get_settings(), "ADMIN_EMAILS", [test_user.email])
    response = await client.post("/api/v1/auth/login", json={
        "email": "testuser@example.com",
        "password": "testpassword123",
    })
    assert response.json()["role"] == "admin"

    me = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {response.json()['access_token']}"}
    )
    assert me.json()["role"] == "admin"


@pytest.mark.asyncio
async def test_register_duplicate_email_any_case(client: AsyncClient, test_user):
    response = await client.post(
        "/api/v1/auth/register", json=signup("TestUser@Example.com", "different")
    )
    assert response.status_code == 409
    assert response.json()["code"] == "conflict"
    assert response.json()["detail"] == "Email already registered"


@pytest.mark.asyncio
async def test_register_duplicate_username(client: AsyncClient, test_user):
    response = await client.post("/api/v1/auth/register", json=signup("different@example.com", "testuser"))
    assert response.status_code == 409
    assert response.json()["detail"] == "Username already taken"


@pytest.mark.asyncio
@pytest.mark.parametrize("field,value", [
    ("password", "short"),
    ("username", "no spaces allowed"),
    ("email", "not-an-email"),
])
async def test_register_rejects_bad_input(client: AsyncClient, field, value):
    body = signup()
    body[field] = value
    response = await client.post("/api/v1/auth/register", json=body)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login_token_carries_user_and_role(client: AsyncClient, test_user):
    response = await client.post("/api/v1/auth/login", json={
        "email": "testuser@example.com",
        "password": "testpassword123",
    })
    assert response.status_code == 200
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["expires_in"] == get_settings().ACCESS_TOKEN_EXPIRE_MINUTES * 60

    claims = jwt.decode(data["access_token"], options={"verify_signature": False})
    assert claims["sub"] == str(test_user.id)
    assert claims["role"] == "user"

    me = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == test_user.id


@pytest.mark.asyncio
async def test_login_wrong_password(client: AsyncClient, test_user):
    response = await client.post("/api/v1/auth/login", json={
        "email": "testuser@example.com",
        "password": "wrongpassword",
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_login_nonexistent_email(client: AsyncClient):
    response = await client.post("/api/v1/auth/login", json={
        "email": "nobody@example.com",
        "password": "anypassword123",
    })
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_deactivated_account(client: AsyncClient, session_factory, test_user):
    async with session_factory() as session:
        await session.execute(update(User).where(User.id == test_user.id).values(is_active=False))
        await session.commit()

    response = await client.post("/api/v1/auth/login", json={
        "email": "testuser@example.com",
        "password": "testpassword123",
    })
    assert response.status_code == 403
    assert response.json()["code"] == "forbidden"


@pytest.mark.asyncio
async def test_protected_routes_need_token(client: AsyncClient):
    assert (await client.get("/api/v1/auth/me")).status_code == 401
    garbage = await client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
    assert garbage.status_code == 401
