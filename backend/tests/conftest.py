"""
Centralized Test Configuration.
"""

import pytest
from httpx import AsyncClient, ASGITransport

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.redis_client import get_redis
from backend.app.core.reliability import payment_gateway_breaker
from backend.app.models.enums import UserRole
import backend.app.core.redis_client as redis_client_module
from backend.tests.helpers import API, auth, register_member, engine, TestingSessionLocal

# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def setex(self, key, seconds, value):
        return await self.set(key, value, ex=seconds)

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}


# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used for token revocation
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()
    payment_gateway_breaker.reset_state()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def admin_token(client, db_session):
    """Create admin user and return auth token."""
    from backend.app.services.membership import create_user

    await create_user(
        db_session,
        name="Admin",
        email="admin@test.com",
        password="admin123",
        role=UserRole.ADMIN,
    )
    await db_session.commit()

    response = await client.post(f"{API}/auth/login", json={
        "email": "admin@test.com",
        "password": "admin123"
    })
    assert response.status_code == 200
    return response.json()["access_token"]


@pytest.fixture
async def gym(client, admin_token):
    """Gym created by the admin. Returns (gym_id, owner token)."""
    response = await client.post(f"{API}/gyms", headers=auth(admin_token), json={
        "name": "Iron Temple",
        "email": "irontemple@test.com",
        "phone": "0112345678",
        "street": "1 Lake Road",
        "city": "Kandy",
        "owner_name": "Gym Owner",
        "owner_email": "owner@test.com",
        "owner_password": "owner123"
    })
    assert response.status_code == 201
    gym_id = response.json()["data"]["id"]

    login = await client.post(f"{API}/auth/login", json={
        "email": "owner@test.com",
        "password": "owner123"
    })
    assert login.status_code == 200
    return gym_id, login.json()["access_token"]


@pytest.fixture
async def member(client):
    """Registered member. Starts with the welcome grant (10 tokens)."""
    return await register_member(client, "member1@test.com")


@pytest.fixture
async def other_member(client):
    return await register_member(client, "member2@test.com", name="Other Member")
