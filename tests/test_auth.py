import pytest
from httpx import AsyncClient

from exercita.config import settings
from exercita.models.enums import Role


@pytest.mark.asyncio
async def test_register_login_and_me(client: AsyncClient):
    register = await client.post(
        f"{settings.API_V1_STR}/auth/register",
        json={"email": "new@test.com", "password": "secret123", "full_name": "New Patient"},
    )
    assert register.status_code == 200, register.text
    body = register.json()["data"]
    assert body["role"] == Role.USER.value
    assert "hashed_password" not in body

    login = await client.post(
        f"{settings.API_V1_STR}/auth/login",
        json={"email": "new@test.com", "password": "secret123"},
    )
    assert login.status_code == 200
    token = login.json()["data"]["access_token"]

    me = await client.get(f"{settings.API_V1_STR}/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    data = me.json()["data"]
    assert data["email"] == "new@test.com"
    assert data["is_admin"] is False
    assert data["is_super_admin"] is False


@pytest.mark.asyncio
async def test_register_rejects_duplicate_email(client: AsyncClient, create_user):
    await create_user("taken@test.com")
    response = await client.post(
        f"{settings.API_V1_STR}/auth/register",
        json={"email": "taken@test.com", "password": "secret123"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_register_validates_phone_number(client: AsyncClient):
    response = await client.post(
        f"{settings.API_V1_STR}/auth/register",
        json={"email": "phone@test.com", "password": "secret123", "phone_number": "call me"},
    )
    assert response.status_code == 422
    assert response.json()["message"] == "Validation Error"


@pytest.mark.asyncio
async def test_login_with_wrong_password(client: AsyncClient, create_user):
    await create_user("patient@test.com")
    response = await client.post(
        f"{settings.API_V1_STR}/auth/login",
        json={"email": "patient@test.com", "password": "wrong-password"},
    )
    assert response.status_code == 401
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_inactive_user_cannot_log_in(client: AsyncClient, create_user):
    await create_user("inactive@test.com", is_active=False)
    response = await client.post(
        f"{settings.API_V1_STR}/auth/login",
        json={"email": "inactive@test.com", "password": "password123"},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_login_is_rate_limited(client: AsyncClient):
    for _ in range(settings.LOGIN_RATE_LIMIT):
        response = await client.post(
            f"{settings.API_V1_STR}/auth/login",
            json={"email": "nobody@test.com", "password": "wrong"},
        )
        assert response.status_code == 401

    blocked = await client.post(
        f"{settings.API_V1_STR}/auth/login",
        json={"email": "nobody@test.com", "password": "wrong"},
    )
    assert blocked.status_code == 429
    assert "Retry-After" in blocked.headers


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(client: AsyncClient):
    response = await client.get(f"{settings.API_V1_STR}/auth/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "abc-123"
