"""
Idempotency Ledger.

Maps (actor, client key, operation kind) to the entity that operation
created, so client retries replay the original result with no side effect.

Protocol inside one transaction:
1. begin()  -> existing entity (replay) or None (fresh)
2. create the entity
3. commit() -> write the mapping

Two concurrent fresh requests both reach commit(); the unique constraint
on (actor_id, idempotency_key, kind) rejects the later one, which the
orchestrator turns into a replay of the winner's entity.
"""

import logging
from typing import Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.booking import Booking
from backend.app.models.enums import IdempotencyKind
from backend.app.models.idempotency_record import IdempotencyRecord
from backend.app.models.offer import Offer
from backend.app.models.ride import Ride
from backend.app.models.trip_request import TripRequest

logger = logging.getLogger("campus_rides.idempotency")

ENTITY_MODELS = {
    IdempotencyKind.RIDE: Ride,
    IdempotencyKind.TRIP_REQUEST: TripRequest,
    IdempotencyKind.OFFER: Offer,
    IdempotencyKind.BOOKING: Booking,
}


async def find_record(
    db: AsyncSession,
    actor_id: str,
    key: str,
    kind: IdempotencyKind
) -> Optional[IdempotencyRecord]:
    result = await db.execute(
        select(IdempotencyRecord)
        .where(
            IdempotencyRecord.actor_id == actor_id,
            IdempotencyRecord.idempotency_key == key,
            IdempotencyRecord.kind == kind,
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def begin(db: AsyncSession, actor_id: str, key: str, kind: IdempotencyKind):
    """
    Look up a previous result for (actor, key, kind).

    A record whose entity is missing is corrupt: it is deleted in the
    current transaction and the request proceeds as fresh.

    Returns:
        The previously created entity, or None when the request is fresh
    """
    record = await find_record(db, actor_id, key, kind)
    if record is None:
        return None

    entity_id = record.reference_id
    entity = None
    if entity_id is not None:
        entity = await db.get(ENTITY_MODELS[kind], entity_id, populate_existing=True)

    if entity is None:
        logger.warning(
            "Deleting stale idempotency record id=%s actor=%s kind=%s ref=%s; processing request as new",
            record.id, actor_id, kind.value, entity_id
        )
        await db.delete(record)
        await db.flush()
        return None

    return entity


async def commit(
    db: AsyncSession,
    actor_id: str,
    key: str,
    kind: IdempotencyKind,
    entity_id: int
) -> IdempotencyRecord:
    """
    Record the entity created for (actor, key, kind).

    Raises:
        IntegrityError: If a concurrent request already recorded the triple
    """
    record = IdempotencyRecord(
        actor_id=actor_id,
        idempotency_key=key,
        kind=kind,
        **{IdempotencyRecord.REFERENCE_COLUMNS[kind]: entity_id}
    )
    db.add(record)
    await db.flush()  # Will raise IntegrityError if the triple is already taken

    return record
