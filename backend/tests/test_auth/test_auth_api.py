"""Tests for authentication endpoints and route guards."""

import uuid
from datetime import timedelta

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import create_access_token, create_token_pair
from app.models.user import User
from conftest import bearer, create_user


def _register_payload(**overrides) -> dict:
    payload = {
        "email": f"new-{uuid.uuid4().hex[:8]}@test.com",
        "password": "securepass123",
        "first_name": "Ada",
        "last_name": "Lovelace",
    }
    payload.update(overrides)
    return payload


class TestRegister:
    async def test_register_candidate_by_default(self, client: AsyncClient) -> None:
        payload = _register_payload()
        response = await client.post("/api/v1/auth/register", json=payload)
        assert response.status_code == 201
        data = response.json()
        assert data["user"]["email"] == payload["email"]
        assert data["user"]["role"] == "candidate"
        assert data["user"]["first_name"] == "Ada"
        assert data["tokens"]["access_token"]
        assert data["tokens"]["token_type"] == "bearer"

    async def test_register_employer(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/auth/register", json=_register_payload(role="employer"))
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "employer"

    async def test_cannot_self_register_as_admin(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/auth/register", json=_register_payload(role="admin"))
        assert response.status_code == 422

    async def test_register_duplicate_email(self, client: AsyncClient) -> None:
        payload = _register_payload()
        assert (await client.post("/api/v1/auth/register", json=payload)).status_code == 201
        response = await client.post("/api/v1/auth/register", json=payload)
        assert response.status_code == 409
        assert "already registered" in response.json()["detail"].lower()

    async def test_register_short_password(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/auth/register", json=_register_payload(password="short"))
        assert response.status_code == 422


class TestLogin:
    async def test_login_success(self, client: AsyncClient, candidate: User) -> None:
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": candidate.email, "password": "testpass123"},
        )
        assert response.status_code == 200
        assert response.json()["user"]["id"] == str(candidate.id)

    async def test_login_wrong_password(self, client: AsyncClient, candidate: User) -> None:
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": candidate.email, "password": "wrongpass"},
        )
        assert response.status_code == 401

    async def test_login_inactive_user(self, client: AsyncClient, db_session: AsyncSession) -> None:
        user = await create_user(db_session, is_active=False)
        response = await client.post(
            "/api/v1/auth/login",
            json={"email": user.email, "password": "testpass123"},
        )
        assert response.status_code == 403


class TestRefresh:
    async def test_refresh_returns_new_pair(self, client: AsyncClient, candidate: User) -> None:
        tokens = create_token_pair(str(candidate.id))
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        assert response.json()["access_token"]

    async def test_access_token_cannot_refresh(self, client: AsyncClient, candidate: User) -> None:
        tokens = create_token_pair(str(candidate.id))
        response = await client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert response.status_code == 401


class TestCurrentUser:
    async def test_me(self, client: AsyncClient, employer: User, employer_headers: dict) -> None:
        response = await client.get("/api/v1/auth/me", headers=employer_headers)
        assert response.status_code == 200
        assert response.json()["email"] == employer.email
        assert response.json()["role"] == "employer"

    async def test_missing_token(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/auth/me")
        assert response.status_code in (401, 403)

    async def test_expired_token_rejected(self, client: AsyncClient, candidate: User) -> None:
        token = create_access_token({"sub": str(candidate.id)}, expires_delta=timedelta(seconds=-1))
        response = await client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_refresh_token_rejected_as_bearer(self, client: AsyncClient, candidate: User) -> None:
        tokens = create_token_pair(str(candidate.id))
        response = await client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"}
        )
        assert response.status_code == 401

    async def test_unknown_user_rejected(self, client: AsyncClient) -> None:
        tokens = create_token_pair(str(uuid.uuid4()))
        response = await client.get(
            "/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"}
        )
        assert response.status_code == 401

    async def test_inactive_user_forbidden(self, client: AsyncClient, db_session: AsyncSession) -> None:
        user = await create_user(db_session, is_active=False)
        response = await client.get("/api/v1/auth/me", headers=bearer(user))
        assert response.status_code == 403


class TestRequireAdmin:
    async def test_non_admin_forbidden(self, client: AsyncClient, employer_headers: dict) -> None:
        response = await client.get("/api/v1/subscriptions", headers=employer_headers)
        assert response.status_code == 403

    async def test_admin_allowed(self, client: AsyncClient, admin_headers: dict) -> None:
        response = await client.get("/api/v1/subscriptions", headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"items": [], "total": 0}
