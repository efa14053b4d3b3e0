"""
Integration tests for the Authentication Flow.

Verifies Register -> Login -> Me -> Logout and the role rules on registration.
"""

import pytest
from sqlalchemy import select

from backend.app.models.token_transaction import TokenTransaction
from backend.app.models.token_enums import TransactionType, RelatedKind
from backend.tests.helpers import API, auth, register_member

# Note: Client and DB setup are in conftest.py


@pytest.mark.asyncio
async def test_admin_registration_blocked(client):
    """ADMIN role cannot be created via API."""
    payload = {
        "name": "Sneaky Admin",
        "email": "admin@test.com",
        "password": "password123",
        "role": "admin"
    }
    response = await client.post(f"{API}/auth/register", json=payload)
    assert response.status_code == 403
    data = response.json()
    assert data["success"] is False
    assert "Admin users cannot be registered" in data["message"]


@pytest.mark.asyncio
async def test_gym_registration_rejected(client):
    """GYM accounts come from the admin gym-creation flow only."""
    payload = {
        "name": "Gym Person",
        "email": "gym@test.com",
        "password": "password123",
        "role": "gym"
    }
    response = await client.post(f"{API}/auth/register", json=payload)
    assert response.status_code == 400
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_register_member_gets_welcome_grant(client, db_session):
    """A new member starts with 10 tokens, backed by one system ledger credit."""
    data = await register_member(client, "newbie@test.com", name="New Bie")

    assert data["role"] == "member"
    assert data["token_balance"] == 10
    assert data["access_token"]

    result = await db_session.execute(
        select(TokenTransaction).where(TokenTransaction.member_id == data["member_id"])
    )
    entries = result.scalars().all()
    assert len(entries) == 1
    assert entries[0].type == TransactionType.CREDIT
    assert entries[0].amount == 10
    assert entries[0].related_kind == RelatedKind.SYSTEM
    assert entries[0].created_by_id is None


@pytest.mark.asyncio
async def test_duplicate_email_rejected(client):
    await register_member(client, "dup@test.com")
    response = await client.post(f"{API}/auth/register", json={
        "name": "Dup Again",
        "email": "DUP@test.com",
        "password": "password123"
    })
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_EMAIL"


@pytest.mark.asyncio
async def test_register_unknown_gym(client):
    response = await client.post(f"{API}/auth/register", json={
        "name": "Lost Member",
        "email": "lost@test.com",
        "password": "password123",
        "gym_id": 999
    })
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_login_and_me(client, member):
    response = await client.post(f"{API}/auth/login", json={
        "email": "member1@test.com",
        "password": "password123"
    })
    assert response.status_code == 200
    token = response.json()["access_token"]
    assert response.json()["member_id"] == member["member_id"]

    me = await client.get(f"{API}/auth/me", headers=auth(token))
    assert me.status_code == 200
    body = me.json()
    assert body["success"] is True
    assert body["data"]["email"] == "member1@test.com"
    assert body["data"]["member_id"] == member["member_id"]
    assert body["data"]["token_balance"] == 10
    assert body["data"]["membership_number"].startswith("MEM-")


@pytest.mark.asyncio
async def test_login_wrong_password(client, member):
    response = await client.post(f"{API}/auth/login", json={
        "email": "member1@test.com",
        "password": "wrong-password"
    })
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


@pytest.mark.asyncio
async def test_missing_token_is_401(client):
    response = await client.get(f"{API}/auth/me")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_is_401(client):
    response = await client.get(f"{API}/auth/me", headers=auth("not-a-jwt"))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_logout_revokes_token(client, member):
    token = member["access_token"]

    response = await client.post(f"{API}/auth/logout", headers=auth(token))
    assert response.status_code == 200

    me = await client.get(f"{API}/auth/me", headers=auth(token))
    assert me.status_code == 401
    assert me.json()["error_code"] == "ERR_AUTH_002"


@pytest.mark.asyncio
async def test_blocked_user_loses_access(client, admin_token, member):
    block = await client.post(
        f"{API}/admin/users/{member['user_id']}/block",
        headers=auth(admin_token),
        json={"reason": "Abuse"}
    )
    assert block.status_code == 200
    assert block.json()["audit_log_id"] is not None

    me = await client.get(f"{API}/auth/me", headers=auth(member["access_token"]))
    assert me.status_code == 401

    login = await client.post(f"{API}/auth/login", json={
        "email": "member1@test.com",
        "password": "password123"
    })
    assert login.status_code == 403

    unblock = await client.post(
        f"{API}/admin/users/{member['user_id']}/unblock",
        headers=auth(admin_token),
        json={}
    )
    assert unblock.status_code == 200

    login = await client.post(f"{API}/auth/login", json={
        "email": "member1@test.com",
        "password": "password123"
    })
    assert login.status_code == 200
