from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from conftest import TEST_PASSWORD, auth_headers
from auth.utils import create_access_token


@pytest.mark.asyncio
async def test_register_interviewee_starts_with_empty_documents(async_client: AsyncClient, database):
    response = await async_client.post("/api/auth/register", json={
        "username": "new_user",
        "email": "New.User@Example.com",
        "password": "hunter22",
        "role": "Interviewee",
    })

    assert response.status_code == 201
    data = response.json()
    assert data["user"]["email"] == "new.user@example.com"
    assert data["user"]["intervieweeInfo"] == {"documents": []}
    assert "password" not in data["user"]
    assert data["token_type"] == "bearer"

    me = await async_client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.json()["user"]["username"] == "new_user"


@pytest.mark.asyncio
async def test_register_rejects_duplicates(async_client: AsyncClient, interviewee):
    response = await async_client.post("/api/auth/register", json={
        "username": "someone_else",
        "email": interviewee["email"],
        "password": "hunter22",
        "role": "Interviewer",
    })

    assert response.status_code == 400
    assert response.json()["detail"] == "An account with this email already exists"


@pytest.mark.asyncio
async def test_register_validates_input(async_client: AsyncClient):
    response = await async_client.post("/api/auth/register", json={
        "username": "x",
        "email": "not-an-email",
        "password": "123",
        "role": "Admin",
    })

    assert response.status_code == 400
    fields = {error["field"] for error in response.json()["errors"]}
    assert fields == {"username", "email", "password", "role"}


@pytest.mark.asyncio
async def test_login_returns_token(async_client: AsyncClient, interviewee):
    response = await async_client.post(
        "/api/auth/login", data={"email": interviewee["email"], "password": TEST_PASSWORD}
    )

    assert response.status_code == 200
    token = response.json()["access_token"]
    me = await async_client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["user"]["id"] == str(interviewee["_id"])


@pytest.mark.asyncio
async def test_repeated_failed_logins_lock_the_account(async_client: AsyncClient, interviewee, database):
    for _ in range(5):
        failed = await async_client.post("/api/auth/login", data={"email": interviewee["email"], "password": "wrong"})
        assert failed.status_code == 401

    locked = await async_client.post(
        "/api/auth/login", data={"email": interviewee["email"], "password": TEST_PASSWORD}
    )

    assert locked.status_code == 423
    assert database.users.find_one({"_id": interviewee["_id"]})["loginAttempts"] == 5


@pytest.mark.asyncio
async def test_successful_login_resets_attempts(async_client: AsyncClient, interviewee, database):
    await async_client.post("/api/auth/login", data={"email": interviewee["email"], "password": "wrong"})

    response = await async_client.post(
        "/api/auth/login", data={"email": interviewee["email"], "password": TEST_PASSWORD}
    )

    assert response.status_code == 200
    assert database.users.find_one({"_id": interviewee["_id"]})["loginAttempts"] == 0


@pytest.mark.asyncio
async def test_expired_lock_allows_login(async_client: AsyncClient, interviewee, database):
    database.users.update_one(
        {"_id": interviewee["_id"]},
        {"$set": {"loginAttempts": 5, "lockUntil": datetime.now(timezone.utc) - timedelta(minutes=1)}},
    )

    response = await async_client.post(
        "/api/auth/login", data={"email": interviewee["email"], "password": TEST_PASSWORD}
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_invalid_and_expired_tokens_are_rejected(async_client: AsyncClient, interviewee):
    expired = create_access_token(interviewee, expires_minutes=-1)

    garbage = await async_client.get("/api/auth/me", headers={"Authorization": "Bearer not.a.token"})
    stale = await async_client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})

    assert garbage.status_code == stale.status_code == 401
    assert garbage.json()["code"] == "AuthenticationError"
    assert garbage.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_deactivated_user_is_rejected(async_client: AsyncClient, interviewee, database):
    database.users.update_one({"_id": interviewee["_id"]}, {"$set": {"isActive": False}})

    response = await async_client.get("/api/files", headers=auth_headers(interviewee))

    assert response.status_code == 401
