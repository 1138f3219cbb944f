"""
Idempotency ledger tests, including recovery from a record whose entity is missing.
"""

import logging
from datetime import timedelta

import pytest
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError

from backend.app.core.clock import utcnow
from backend.app.domain.marketplace import idempotency_ledger
from backend.app.models.enums import DistanceCategory, IdempotencyKind
from backend.app.models.idempotency_record import IdempotencyRecord
from backend.app.models.ride import Ride
from backend.app.models.user import User


async def make_user(db_session, external_id: str) -> User:
    user = User(external_id=external_id, email=f"{external_id}@campus.edu")
    db_session.add(user)
    await db_session.flush()
    return user


async def make_ride(db_session, driver_id: str) -> Ride:
    now = utcnow()
    ride = Ride(
        driver_id=driver_id,
        origin_text="East Dorms",
        destination_text="Stadium",
        earliest_depart_at=now + timedelta(hours=1),
        latest_depart_at=now + timedelta(hours=2),
        distance_category=DistanceCategory.SHORT,
        price_cents=300,
        seats_total=2,
        seats_available=2,
    )
    db_session.add(ride)
    await db_session.flush()
    return ride


async def insert_dangling_record(engine, actor_id: str, key: str, ride_id: int):
    """Write a RIDE record pointing at a ride that does not exist."""
    async with engine.connect() as conn:
        # Must run outside a transaction for SQLite to honour it
        await conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
        await conn.execute(insert(IdempotencyRecord).values(
            actor_id=actor_id,
            idempotency_key=key,
            kind=IdempotencyKind.RIDE,
            ride_id=ride_id,
        ))
        await conn.commit()
        await conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.mark.asyncio
async def test_first_use_is_fresh(db_session):
    assert await idempotency_ledger.begin(db_session, "driver_dana", "k1", IdempotencyKind.RIDE) is None


@pytest.mark.asyncio
async def test_committed_key_replays_entity(db_session):
    await make_user(db_session, "driver_dana")
    ride = await make_ride(db_session, "driver_dana")
    await idempotency_ledger.commit(db_session, "driver_dana", "k1", IdempotencyKind.RIDE, ride.id)
    await db_session.commit()

    replayed = await idempotency_ledger.begin(db_session, "driver_dana", "k1", IdempotencyKind.RIDE)

    assert isinstance(replayed, Ride)
    assert replayed.id == ride.id


@pytest.mark.asyncio
async def test_scope_is_actor_key_and_kind(db_session):
    await make_user(db_session, "driver_dana")
    await make_user(db_session, "driver_eli")
    ride = await make_ride(db_session, "driver_dana")
    await idempotency_ledger.commit(db_session, "driver_dana", "k1", IdempotencyKind.RIDE, ride.id)
    await db_session.commit()

    assert await idempotency_ledger.begin(db_session, "driver_eli", "k1", IdempotencyKind.RIDE) is None
    assert await idempotency_ledger.begin(db_session, "driver_dana", "k2", IdempotencyKind.RIDE) is None
    assert await idempotency_ledger.begin(db_session, "driver_dana", "k1", IdempotencyKind.BOOKING) is None


@pytest.mark.asyncio
async def test_duplicate_commit_is_rejected_by_constraint(db_session):
    await make_user(db_session, "driver_dana")
    first = await make_ride(db_session, "driver_dana")
    second = await make_ride(db_session, "driver_dana")
    await idempotency_ledger.commit(db_session, "driver_dana", "k1", IdempotencyKind.RIDE, first.id)

    with pytest.raises(IntegrityError):
        await idempotency_ledger.commit(db_session, "driver_dana", "k1", IdempotencyKind.RIDE, second.id)

    await db_session.rollback()


@pytest.mark.asyncio
async def test_record_must_reference_its_own_kind(db_session):
    await make_user(db_session, "driver_dana")
    ride = await make_ride(db_session, "driver_dana")
    db_session.add(IdempotencyRecord(
        actor_id="driver_dana", idempotency_key="k1", kind=IdempotencyKind.BOOKING, ride_id=ride.id
    ))

    with pytest.raises(IntegrityError):
        await db_session.flush()

    await db_session.rollback()


@pytest.mark.asyncio
async def test_stale_record_is_deleted_and_treated_as_fresh(engine, db_session, caplog):
    await make_user(db_session, "driver_dana")
    await db_session.commit()
    await insert_dangling_record(engine, "driver_dana", "k1", ride_id=999)

    with caplog.at_level(logging.WARNING, logger="campus_rides.idempotency"):
        result = await idempotency_ledger.begin(db_session, "driver_dana", "k1", IdempotencyKind.RIDE)
    await db_session.commit()

    assert result is None
    assert "stale idempotency record" in caplog.text
    assert await idempotency_ledger.find_record(db_session, "driver_dana", "k1", IdempotencyKind.RIDE) is None


@pytest.mark.asyncio
async def test_stale_record_allows_clean_retry(engine, client, auth_headers, ride_payload, db_session):
    await make_user(db_session, "driver_dana")
    await db_session.commit()
    await insert_dangling_record(engine, "driver_dana", "retry-key", ride_id=999)

    response = await client.post(
        "/v1/rides", json=ride_payload(), headers=auth_headers("driver_dana", "retry-key")
    )

    assert response.status_code == 201
    records = await db_session.execute(
        select(IdempotencyRecord).where(IdempotencyRecord.idempotency_key == "retry-key")
    )
    rows = records.scalars().all()
    assert len(rows) == 1
    assert rows[0].ride_id == response.json()["id"]
