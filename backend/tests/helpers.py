"""
Shared test database and request helpers.

Imported by conftest.py and by tests that need their own sessions, so there
is exactly one in-memory engine per test run.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

API = "/api/v1"


# Event handler to enable foreign keys for SQLite
@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


async def register_member(client, email: str, name: str = "Test Member", gym_id: int = None) -> dict:
    """Register a member through the API and return the token response body."""
    response = await client.post(f"{API}/auth/register", json={
        "name": name,
        "email": email,
        "password": "password123",
        "gym_id": gym_id
    })
    assert response.status_code == 201
    return response.json()
