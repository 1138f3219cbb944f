"""
Matchmaking State Machine.

Trip request: ACTIVE -> CLOSED (offer accepted) -> ACTIVE (acceptance undone)
Offer:        PENDING -> ACCEPTED | CANCELLED, ACCEPTED -> CANCELLED

Every status change is a conditional UPDATE guarded by the expected
current status. Two partial unique indexes back the optimistic checks:
one non-terminal offer per (trip request, driver) and one ACCEPTED offer
per trip request.
"""

import logging
from typing import Optional, Tuple
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConflictError, InsufficientPermissionsError, ResourceNotFoundError
from backend.app.domain.marketplace import booking_ledger
from backend.app.models.booking import Booking
from backend.app.models.enums import NON_TERMINAL_OFFER_STATUSES, OfferStatus, TripRequestStatus
from backend.app.models.offer import Offer
from backend.app.models.trip_request import TripRequest

logger = logging.getLogger("campus_rides.matchmaking")


async def find_active_offer(db: AsyncSession, trip_request_id: int, driver_id: str) -> Optional[Offer]:
    """The driver's PENDING or ACCEPTED offer on a trip request."""
    result = await db.execute(
        select(Offer).where(
            Offer.trip_request_id == trip_request_id,
            Offer.driver_id == driver_id,
            Offer.status.in_(NON_TERMINAL_OFFER_STATUSES),
        )
    )
    return result.scalar_one_or_none()


async def find_accepted_offer(db: AsyncSession, trip_request_id: int) -> Optional[Offer]:
    result = await db.execute(
        select(Offer).where(
            Offer.trip_request_id == trip_request_id,
            Offer.status == OfferStatus.ACCEPTED,
        )
    )
    return result.scalar_one_or_none()


async def _transition_offer(db: AsyncSession, offer_id: int, expected: OfferStatus, target: OfferStatus) -> bool:
    result = await db.execute(
        update(Offer)
        .where(Offer.id == offer_id, Offer.status == expected)
        .values(status=target)
    )
    return result.rowcount == 1


async def _transition_trip_request(
    db: AsyncSession,
    trip_request_id: int,
    expected: TripRequestStatus,
    target: TripRequestStatus
) -> bool:
    result = await db.execute(
        update(TripRequest)
        .where(TripRequest.id == trip_request_id, TripRequest.status == expected)
        .values(status=target)
    )
    return result.rowcount == 1


async def create_offer(
    db: AsyncSession,
    trip_request_id: int,
    driver_id: str,
    seats_offered: int,
    price_cents: int,
    message: Optional[str] = None
) -> Offer:
    """
    Create a PENDING offer from a driver on an ACTIVE trip request.

    Raises:
        ResourceNotFoundError: Trip request does not exist
        ConflictError: Trip request not active, self-offer, or driver already has a live offer
        IntegrityError: A concurrent offer from the same driver won the race
    """
    trip_request = await db.get(TripRequest, trip_request_id, populate_existing=True)
    if trip_request is None:
        raise ResourceNotFoundError("Trip request", trip_request_id)

    if trip_request.status != TripRequestStatus.ACTIVE:
        raise ConflictError("Trip request is no longer active.")

    if trip_request.rider_id == driver_id:
        raise ConflictError("You cannot offer a ride for your own request.")

    if await find_active_offer(db, trip_request_id, driver_id) is not None:
        raise ConflictError("You already have an active offer for this trip request.")

    offer = Offer(
        trip_request_id=trip_request_id,
        driver_id=driver_id,
        rider_id=trip_request.rider_id,
        seats_offered=seats_offered,
        price_cents=price_cents,
        message=message,
        status=OfferStatus.PENDING,
    )
    db.add(offer)
    await db.flush()  # Will raise IntegrityError if a live offer slipped in

    return offer


async def accept_offer(db: AsyncSession, offer_id: int, actor_id: str) -> Tuple[Offer, Booking, int]:
    """
    Accept a PENDING offer on behalf of the trip request's rider.

    Effects, all in the caller's transaction:
    1. Trip request ACTIVE -> CLOSED
    2. Offer PENDING -> ACCEPTED
    3. CONFIRMED matched booking for the offer's driver, rider, seats and price
    4. Every other PENDING offer on the trip request -> CANCELLED

    Returns:
        (offer, booking, number of competing offers cancelled)

    Raises:
        ResourceNotFoundError: Offer does not exist
        InsufficientPermissionsError: Actor is not the trip request's rider
        ConflictError: Offer not pending, trip request not active, or another offer already accepted
        IntegrityError: A concurrent acceptance on the same trip request won the race
    """
    offer = await db.get(Offer, offer_id, populate_existing=True)
    if offer is None:
        raise ResourceNotFoundError("Offer", offer_id)

    trip_request = await db.get(TripRequest, offer.trip_request_id, populate_existing=True)

    if trip_request.rider_id != actor_id:
        raise InsufficientPermissionsError("Only the rider can accept this offer.")

    if offer.status != OfferStatus.PENDING:
        raise ConflictError(f"Cannot accept offer in {offer.status.value} status.")

    if trip_request.status != TripRequestStatus.ACTIVE:
        raise ConflictError("Trip request is no longer active.")

    if await find_accepted_offer(db, trip_request.id) is not None:
        raise ConflictError("This trip request already has an accepted offer.")

    # Trip request row first: competing acceptances queue on it
    if not await _transition_trip_request(
        db, trip_request.id, TripRequestStatus.ACTIVE, TripRequestStatus.CLOSED
    ):
        raise ConflictError("Trip request is no longer active.")

    if not await _transition_offer(db, offer.id, OfferStatus.PENDING, OfferStatus.ACCEPTED):
        raise ConflictError("Offer is no longer pending.")

    await db.refresh(offer)
    booking = await booking_ledger.create_matched_booking(db, offer)

    losers = await db.execute(
        update(Offer)
        .where(
            Offer.trip_request_id == trip_request.id,
            Offer.id != offer.id,
            Offer.status == OfferStatus.PENDING,
        )
        .values(status=OfferStatus.CANCELLED)
    )

    logger.info(
        "Offer %s accepted for trip request %s; %s competing offer(s) cancelled",
        offer.id, trip_request.id, losers.rowcount
    )

    return offer, booking, losers.rowcount


async def cancel_offer(db: AsyncSession, offer_id: int, actor_id: str) -> Tuple[Offer, bool, Optional[Booking]]:
    """
    Cancel an offer as its driver or its rider.

    - Already CANCELLED: success, no write
    - Driver: only while PENDING
    - Rider: PENDING or ACCEPTED
    - ACCEPTED: also cancels the matched booking and reopens the trip request

    Returns:
        (offer, changed, cancelled booking or None)

    Raises:
        ResourceNotFoundError: Offer does not exist
        InsufficientPermissionsError: Actor is neither the driver nor the rider
        ConflictError: Driver cancelling an accepted offer, or the offer changed underneath
    """
    offer = await db.get(Offer, offer_id, populate_existing=True)
    if offer is None:
        raise ResourceNotFoundError("Offer", offer_id)

    is_driver = offer.driver_id == actor_id
    is_rider = offer.rider_id == actor_id
    if not is_driver and not is_rider:
        raise InsufficientPermissionsError("You are not authorized to cancel this offer.")

    if offer.status == OfferStatus.CANCELLED:
        return offer, False, None

    if is_driver and offer.status != OfferStatus.PENDING:
        raise ConflictError("Drivers cannot cancel an offer once it has been accepted.")

    previous = offer.status
    if not await _transition_offer(db, offer.id, previous, OfferStatus.CANCELLED):
        await db.refresh(offer)
        if offer.status == OfferStatus.CANCELLED:
            return offer, False, None
        raise ConflictError("Offer changed while cancelling; please retry.")

    booking = None
    if previous == OfferStatus.ACCEPTED:
        booking = await booking_ledger.cancel_matched_booking(db, offer.trip_request_id)
        reopened = await _transition_trip_request(
            db, offer.trip_request_id, TripRequestStatus.CLOSED, TripRequestStatus.ACTIVE
        )
        if not reopened:
            logger.warning(
                "Accepted offer %s cancelled but trip request %s was not CLOSED; left unchanged",
                offer.id, offer.trip_request_id
            )
        else:
            logger.info("Accepted offer %s cancelled; trip request %s reopened", offer.id, offer.trip_request_id)

    await db.refresh(offer)

    return offer, True, booking
