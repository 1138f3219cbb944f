"""
Inventory Ledger.

Sole writer of Ride.seats_available. Both primitives are single
conditional UPDATE statements; nothing reads the counter, computes a new
value in Python and writes it back.
"""

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from backend.app.models.enums import RideStatus
from backend.app.models.ride import Ride


async def reserve(db: AsyncSession, ride_id: int, seats: int) -> None:
    """
    Take `seats` from a ride's inventory.

    The decrement only applies when the ride is ACTIVE, has not departed
    and still has enough seats. When no row is updated, the ride is
    re-read to report why, in this order: missing, not active, departed,
    not enough seats.

    Raises:
        ResourceNotFoundError: Ride does not exist
        ConflictError: Any other guard failed
    """
    now = utcnow()
    result = await db.execute(
        update(Ride)
        .where(
            Ride.id == ride_id,
            Ride.status == RideStatus.ACTIVE,
            Ride.latest_depart_at > now,
            Ride.seats_available >= seats,
        )
        .values(seats_available=Ride.seats_available - seats)
    )
    if result.rowcount == 1:
        return

    ride = await db.get(Ride, ride_id, populate_existing=True)
    if ride is None:
        raise ResourceNotFoundError("Ride", ride_id)
    if ride.status != RideStatus.ACTIVE:
        raise ConflictError("Ride is not active.")
    if ride.latest_depart_at <= now:
        raise ConflictError("Ride has departed.")
    if ride.seats_available < seats:
        raise ConflictError(
            "Not enough seats available.",
            details={"seats_available": ride.seats_available, "seats_requested": seats}
        )
    raise ConflictError("Unable to book ride.")


async def release(db: AsyncSession, ride_id: int, seats: int) -> None:
    """
    Give back seats taken by an earlier successful reserve().

    Only called when reversing that reservation, with the same count,
    so seats_available never exceeds seats_total.
    """
    await db.execute(
        update(Ride)
        .where(Ride.id == ride_id)
        .values(seats_available=Ride.seats_available + seats)
    )
