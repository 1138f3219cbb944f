"""
Booking Ledger.

Records reservations for both flows on one table:
- direct bookings take seats from a ride through the inventory ledger
- matched bookings are created and cancelled only by matchmaking

At most one CONFIRMED booking per (ride, rider) is enforced by a partial
unique index; a duplicate insert raises IntegrityError and the caller's
transaction rolls back, seat reservation included.
"""

from typing import Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConflictError, InsufficientPermissionsError, ResourceNotFoundError
from backend.app.domain.marketplace import inventory_ledger
from backend.app.models.booking import Booking
from backend.app.models.enums import BookingKind, BookingStatus
from backend.app.models.offer import Offer


async def find_confirmed_direct(db: AsyncSession, ride_id: int, rider_id: str) -> Optional[Booking]:
    result = await db.execute(
        select(Booking).where(
            Booking.ride_id == ride_id,
            Booking.rider_id == rider_id,
            Booking.status == BookingStatus.CONFIRMED,
        )
    )
    return result.scalar_one_or_none()


async def find_confirmed_matched(db: AsyncSession, trip_request_id: int) -> Optional[Booking]:
    result = await db.execute(
        select(Booking).where(
            Booking.trip_request_id == trip_request_id,
            Booking.status == BookingStatus.CONFIRMED,
        )
    )
    return result.scalar_one_or_none()


async def create_direct_booking(db: AsyncSession, ride_id: int, rider_id: str, seats: int) -> Booking:
    """
    Reserve seats on a ride and record a CONFIRMED booking for them.

    Raises:
        ResourceNotFoundError / ConflictError: From the seat reservation
        IntegrityError: Rider already holds a confirmed booking on the ride
    """
    await inventory_ledger.reserve(db, ride_id, seats)

    booking = Booking(
        ride_id=ride_id,
        rider_id=rider_id,
        seats_booked=seats,
        status=BookingStatus.CONFIRMED,
    )
    db.add(booking)
    await db.flush()  # Will raise IntegrityError on a second live booking

    return booking


async def create_matched_booking(db: AsyncSession, offer: Offer) -> Booking:
    """Record the CONFIRMED booking that backs an accepted offer."""
    booking = Booking(
        trip_request_id=offer.trip_request_id,
        driver_id=offer.driver_id,
        rider_id=offer.rider_id,
        seats_booked=offer.seats_offered,
        price_cents=offer.price_cents,
        status=BookingStatus.CONFIRMED,
    )
    db.add(booking)
    await db.flush()

    return booking


async def cancel_booking(db: AsyncSession, booking_id: int, actor_id: str) -> Tuple[Booking, bool]:
    """
    Cancel a direct booking and give its seats back to the ride.

    Cancelling an already-cancelled booking succeeds without any write.

    Returns:
        (booking, changed)

    Raises:
        ResourceNotFoundError: Booking does not exist
        InsufficientPermissionsError: Actor is not the booking's rider
        ConflictError: Booking belongs to the matched flow
    """
    booking = await db.get(Booking, booking_id, populate_existing=True)
    if booking is None:
        raise ResourceNotFoundError("Booking", booking_id)

    if booking.rider_id != actor_id:
        raise InsufficientPermissionsError("You are not authorized to cancel this booking.")

    if booking.kind == BookingKind.MATCHED:
        raise ConflictError("Matched bookings are cancelled by cancelling the accepted offer.")

    if booking.status == BookingStatus.CANCELLED:
        return booking, False

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED)
        .values(status=BookingStatus.CANCELLED)
    )
    if result.rowcount == 0:
        # A concurrent cancel got there first and already released the seats
        await db.refresh(booking)
        return booking, False

    await inventory_ledger.release(db, booking.ride_id, booking.seats_booked)
    await db.refresh(booking)

    return booking, True


async def cancel_matched_booking(db: AsyncSession, trip_request_id: int) -> Optional[Booking]:
    """Cancel the live matched booking of a trip request, if there is one."""
    booking = await find_confirmed_matched(db, trip_request_id)
    if booking is None:
        return None

    await db.execute(
        update(Booking)
        .where(Booking.id == booking.id, Booking.status == BookingStatus.CONFIRMED)
        .values(status=BookingStatus.CANCELLED)
    )
    await db.refresh(booking)

    return booking
