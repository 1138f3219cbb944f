"""
Centralized Test Configuration.
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.core.jwt import create_access_token
from backend.app.db.session import get_db, Base

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
async def engine():
    """Fresh in-memory database per test, with every table and index created."""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    event.listen(test_engine.sync_engine, "connect", set_sqlite_pragma)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture(autouse=True)
def override_get_db(session_factory):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides = {}


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation and assertions
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


def make_token(user_id: str, email: str = None, email_verified: bool = True) -> str:
    return create_access_token(data={
        "sub": user_id,
        "email": email or f"{user_id}@campus.edu",
        "email_verified": email_verified,
    })


@pytest.fixture
def auth_headers():
    """Build request headers for a campus user, optionally with an Idempotency-Key."""
    def _headers(user_id: str, key: str = None) -> dict:
        headers = {"Authorization": f"Bearer {make_token(user_id)}"}
        if key is not None:
            headers["Idempotency-Key"] = key
        return headers
    return _headers


def future(hours: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


@pytest.fixture
def ride_payload():
    def _payload(**overrides) -> dict:
        payload = {
            "origin_text": "North Campus Library",
            "destination_text": "Downtown Station",
            "earliest_depart_at": future(1),
            "latest_depart_at": future(3),
            "distance_category": "MEDIUM",
            "price_cents": 500,
            "seats_total": 4,
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def trip_request_payload():
    def _payload(**overrides) -> dict:
        payload = {
            "origin_text": "Science Quad",
            "destination_text": "Airport Terminal B",
            "earliest_desired_at": future(2),
            "latest_desired_at": future(5),
            "distance_category": "LONG",
            "seats_needed": 2,
        }
        payload.update(overrides)
        return payload
    return _payload


@pytest.fixture
def post_ride(client, auth_headers, ride_payload):
    """Create a ride through the API and return its JSON."""
    async def _post(driver_id: str = "driver_dana", key: str = None, **overrides) -> dict:
        response = await client.post(
            "/v1/rides",
            json=ride_payload(**overrides),
            headers=auth_headers(driver_id, key or f"ride-{uuid.uuid4()}"),
        )
        assert response.status_code == 201, response.text
        return response.json()
    return _post


@pytest.fixture
def post_trip_request(client, auth_headers, trip_request_payload):
    """Create a trip request through the API and return its JSON."""
    async def _post(rider_id: str = "rider_riley", key: str = None, **overrides) -> dict:
        response = await client.post(
            "/v1/trip-requests",
            json=trip_request_payload(**overrides),
            headers=auth_headers(rider_id, key or f"trip-{uuid.uuid4()}"),
        )
        assert response.status_code == 201, response.text
        return response.json()
    return _post


@pytest.fixture
def post_offer(client, auth_headers):
    """Create an offer through the API and return its JSON."""
    async def _post(trip_request_id: int, driver_id: str, seats_offered: int = 2, price_cents: int = 1500) -> dict:
        response = await client.post(
            f"/v1/trip-requests/{trip_request_id}/offers",
            json={"seats_offered": seats_offered, "price_cents": price_cents},
            headers=auth_headers(driver_id, f"offer-{uuid.uuid4()}"),
        )
        assert response.status_code == 201, response.text
        return response.json()
    return _post
