"""
Marketplace Service (Transaction Orchestrator).

Runs every mutating marketplace operation as one unit of work:
1. Idempotency check (create operations)
2. Guarded entity transition
3. Idempotency mapping and audit rows

A uniqueness violation that slipped past the optimistic checks means a
concurrent request committed first. The transaction is rolled back and
the relevant scope re-read, so the caller gets a replay of the winner's
result or a precise conflict, never a raw constraint error.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ConflictError
from backend.app.db.session import unit_of_work
from backend.app.domain.marketplace import booking_ledger, idempotency_ledger, matchmaking, validation
from backend.app.models.booking import Booking
from backend.app.models.enums import BookingStatus, IdempotencyKind, RideStatus, TripRequestStatus
from backend.app.models.offer import Offer
from backend.app.models.ride import Ride
from backend.app.models.trip_request import TripRequest
from backend.app.schemas.offer import OfferCreate
from backend.app.schemas.ride import RideCreate
from backend.app.schemas.trip_request import TripRequestCreate
from backend.app.services import audit
from backend.app.services.audit import AuditAction
from backend.app.services.users import ensure_user

logger = logging.getLogger("campus_rides.marketplace")

RACE_LOST_MESSAGE = "Request conflicted with a concurrent update; please retry."


@dataclass
class MutationResult:
    """Entity produced by a replay-safe create, and whether this call created it."""
    entity: Any
    created: bool


class MarketplaceService:

    @staticmethod
    async def _resolve_race(
        db: AsyncSession,
        actor_id: str,
        key: Optional[str],
        kind: Optional[IdempotencyKind],
        scope_check: Optional[Callable[[], Awaitable[Optional[str]]]] = None,
    ) -> MutationResult:
        """
        Classify a uniqueness violation after the losing transaction rolled back.

        Order: the idempotency triple first (replay), then the operation's
        own uniqueness scope (conflict with a precise message).
        """
        async with unit_of_work(db):
            if key is not None:
                existing = await idempotency_ledger.begin(db, actor_id, key, kind)
                if existing is not None:
                    logger.info(
                        "Concurrent duplicate of %s key=%s for actor=%s; replaying entity %s",
                        kind.value, key, actor_id, existing.id
                    )
                    return MutationResult(existing, created=False)

            message = await scope_check() if scope_check is not None else None

        logger.warning("Uniqueness race lost by actor=%s (%s)", actor_id, message or "unclassified")
        raise ConflictError(message or RACE_LOST_MESSAGE)

    @staticmethod
    async def _replay_or_raise(
        db: AsyncSession,
        actor_id: str,
        key: str,
        kind: IdempotencyKind,
        error: ConflictError,
    ) -> MutationResult:
        """
        Re-check the idempotency triple after a guard conflict.

        A same-key twin that committed between our lookup and our guard makes
        the guard fail on the twin's own entity; that is a replay, not a conflict.
        """
        async with unit_of_work(db):
            existing = await idempotency_ledger.begin(db, actor_id, key, kind)

        if existing is None:
            raise error

        logger.info(
            "Concurrent duplicate of %s key=%s for actor=%s; replaying entity %s",
            kind.value, key, actor_id, existing.id
        )
        return MutationResult(existing, created=False)

    @staticmethod
    async def create_ride(db: AsyncSession, identity: dict, key: str, params: RideCreate) -> MutationResult:
        """Post a ride with seats_available = seats_total. Replay-safe on (driver, key)."""
        driver_id = identity["user_id"]
        await ensure_user(db, identity)

        try:
            async with unit_of_work(db):
                existing = await idempotency_ledger.begin(db, driver_id, key, IdempotencyKind.RIDE)
                if existing is not None:
                    logger.info("Replaying ride %s for driver=%s key=%s", existing.id, driver_id, key)
                    return MutationResult(existing, created=False)

                earliest, latest, preferred = validation.validate_window(
                    params.earliest_depart_at, params.latest_depart_at, params.preferred_depart_at, "depart"
                )
                seats_total = validation.validate_seats(params.seats_total, "seats_total")

                ride = Ride(
                    driver_id=driver_id,
                    origin_text=validation.validate_text(params.origin_text, "origin_text"),
                    destination_text=validation.validate_text(params.destination_text, "destination_text"),
                    earliest_depart_at=earliest,
                    latest_depart_at=latest,
                    preferred_depart_at=preferred,
                    distance_category=params.distance_category,
                    price_cents=validation.validate_price(params.price_cents),
                    seats_total=seats_total,
                    seats_available=seats_total,
                    pickup_instructions=validation.validate_note(params.pickup_instructions, "pickup_instructions"),
                    dropoff_instructions=validation.validate_note(params.dropoff_instructions, "dropoff_instructions"),
                    status=RideStatus.ACTIVE,
                )
                db.add(ride)
                await db.flush()

                await idempotency_ledger.commit(db, driver_id, key, IdempotencyKind.RIDE, ride.id)
                await audit.log_event(
                    db, AuditAction.RIDE_CREATED, "ride", ride.id, actor_id=driver_id,
                    metadata={"seats_total": seats_total, "idempotency_key": key}
                )
        except IntegrityError:
            return await MarketplaceService._resolve_race(db, driver_id, key, IdempotencyKind.RIDE)

        logger.info("Ride %s created by driver=%s", ride.id, driver_id)
        return MutationResult(ride, created=True)

    @staticmethod
    async def create_trip_request(
        db: AsyncSession,
        identity: dict,
        key: str,
        params: TripRequestCreate
    ) -> MutationResult:
        """Post an ACTIVE trip request. Replay-safe on (rider, key)."""
        rider_id = identity["user_id"]
        await ensure_user(db, identity)

        try:
            async with unit_of_work(db):
                existing = await idempotency_ledger.begin(db, rider_id, key, IdempotencyKind.TRIP_REQUEST)
                if existing is not None:
                    logger.info("Replaying trip request %s for rider=%s key=%s", existing.id, rider_id, key)
                    return MutationResult(existing, created=False)

                earliest, latest, preferred = validation.validate_window(
                    params.earliest_desired_at, params.latest_desired_at, params.preferred_desired_at, "desired"
                )

                trip_request = TripRequest(
                    rider_id=rider_id,
                    origin_text=validation.validate_text(params.origin_text, "origin_text"),
                    destination_text=validation.validate_text(params.destination_text, "destination_text"),
                    earliest_desired_at=earliest,
                    latest_desired_at=latest,
                    preferred_desired_at=preferred,
                    distance_category=params.distance_category,
                    seats_needed=validation.validate_seats(params.seats_needed, "seats_needed"),
                    pickup_instructions=validation.validate_note(params.pickup_instructions, "pickup_instructions"),
                    dropoff_instructions=validation.validate_note(params.dropoff_instructions, "dropoff_instructions"),
                    status=TripRequestStatus.ACTIVE,
                )
                db.add(trip_request)
                await db.flush()

                await idempotency_ledger.commit(
                    db, rider_id, key, IdempotencyKind.TRIP_REQUEST, trip_request.id
                )
                await audit.log_event(
                    db, AuditAction.TRIP_REQUEST_CREATED, "trip_request", trip_request.id, actor_id=rider_id,
                    metadata={"seats_needed": trip_request.seats_needed, "idempotency_key": key}
                )
        except IntegrityError:
            return await MarketplaceService._resolve_race(db, rider_id, key, IdempotencyKind.TRIP_REQUEST)

        logger.info("Trip request %s created by rider=%s", trip_request.id, rider_id)
        return MutationResult(trip_request, created=True)

    @staticmethod
    async def create_offer(
        db: AsyncSession,
        identity: dict,
        key: str,
        trip_request_id: int,
        params: OfferCreate
    ) -> MutationResult:
        """Offer a ride on an ACTIVE trip request. Replay-safe on (driver, key)."""
        driver_id = identity["user_id"]
        await ensure_user(db, identity)

        try:
            async with unit_of_work(db):
                existing = await idempotency_ledger.begin(db, driver_id, key, IdempotencyKind.OFFER)
                if existing is not None:
                    logger.info("Replaying offer %s for driver=%s key=%s", existing.id, driver_id, key)
                    return MutationResult(existing, created=False)

                offer = await matchmaking.create_offer(
                    db,
                    trip_request_id=trip_request_id,
                    driver_id=driver_id,
                    seats_offered=validation.validate_seats(params.seats_offered, "seats_offered"),
                    price_cents=validation.validate_price(params.price_cents),
                    message=params.message,
                )

                await idempotency_ledger.commit(db, driver_id, key, IdempotencyKind.OFFER, offer.id)
                await audit.log_event(
                    db, AuditAction.OFFER_CREATED, "offer", offer.id, actor_id=driver_id,
                    metadata={"trip_request_id": trip_request_id, "idempotency_key": key}
                )
        except IntegrityError:
            async def active_offer_taken() -> Optional[str]:
                if await matchmaking.find_active_offer(db, trip_request_id, driver_id) is not None:
                    return "You already have an active offer for this trip request."
                return None

            return await MarketplaceService._resolve_race(
                db, driver_id, key, IdempotencyKind.OFFER, active_offer_taken
            )
        except ConflictError as error:
            return await MarketplaceService._replay_or_raise(db, driver_id, key, IdempotencyKind.OFFER, error)

        logger.info("Offer %s created by driver=%s on trip request %s", offer.id, driver_id, trip_request_id)
        return MutationResult(offer, created=True)

    @staticmethod
    async def accept_offer(db: AsyncSession, identity: dict, offer_id: int) -> Tuple[Offer, Booking]:
        """
        Accept an offer as the trip request's rider.

        Offer, booking, trip request and competing offers change together
        or not at all.
        """
        rider_id = identity["user_id"]

        try:
            async with unit_of_work(db):
                offer, booking, cancelled = await matchmaking.accept_offer(db, offer_id, rider_id)

                await audit.log_event(
                    db, AuditAction.OFFER_ACCEPTED, "offer", offer.id, actor_id=rider_id,
                    metadata={
                        "trip_request_id": offer.trip_request_id,
                        "booking_id": booking.id,
                        "competing_offers_cancelled": cancelled,
                    }
                )
                await audit.log_event(
                    db, AuditAction.BOOKING_CREATED, "booking", booking.id, actor_id=rider_id,
                    metadata={"kind": booking.kind.value, "trip_request_id": booking.trip_request_id}
                )
        except IntegrityError:
            async def already_accepted() -> Optional[str]:
                current = await db.get(Offer, offer_id, populate_existing=True)
                if current is not None and await matchmaking.find_accepted_offer(db, current.trip_request_id) is not None:
                    return "This trip request already has an accepted offer."
                return None

            # Always raises: there is no idempotency key to replay from
            await MarketplaceService._resolve_race(db, rider_id, None, None, already_accepted)

        return offer, booking

    @staticmethod
    async def cancel_offer(db: AsyncSession, identity: dict, offer_id: int) -> Offer:
        """Cancel an offer as its driver or rider. Cancelling twice is a no-op."""
        actor_id = identity["user_id"]

        async with unit_of_work(db):
            offer, changed, booking = await matchmaking.cancel_offer(db, offer_id, actor_id)

            if changed:
                await audit.log_event(
                    db, AuditAction.OFFER_CANCELLED, "offer", offer.id, actor_id=actor_id,
                    metadata={"trip_request_id": offer.trip_request_id, "reopened": booking is not None}
                )
            if booking is not None:
                await audit.log_event(
                    db, AuditAction.BOOKING_CANCELLED, "booking", booking.id, actor_id=actor_id,
                    metadata={"kind": booking.kind.value, "offer_id": offer.id}
                )

        return offer

    @staticmethod
    async def create_booking(
        db: AsyncSession,
        identity: dict,
        key: str,
        ride_id: int,
        seats: int
    ) -> MutationResult:
        """Book seats on a ride. Replay-safe on (rider, key)."""
        rider_id = identity["user_id"]
        await ensure_user(db, identity)

        try:
            async with unit_of_work(db):
                existing = await idempotency_ledger.begin(db, rider_id, key, IdempotencyKind.BOOKING)
                if existing is not None:
                    logger.info("Replaying booking %s for rider=%s key=%s", existing.id, rider_id, key)
                    return MutationResult(existing, created=False)

                seats = validation.validate_seats(seats, "seats_booked")

                ride = await db.get(Ride, ride_id)
                if ride is not None and ride.driver_id == rider_id:
                    raise ConflictError("You cannot book your own ride.")

                if await booking_ledger.find_confirmed_direct(db, ride_id, rider_id) is not None:
                    raise ConflictError("You already have a confirmed booking for this ride.")

                booking = await booking_ledger.create_direct_booking(db, ride_id, rider_id, seats)

                await idempotency_ledger.commit(db, rider_id, key, IdempotencyKind.BOOKING, booking.id)
                await audit.log_event(
                    db, AuditAction.BOOKING_CREATED, "booking", booking.id, actor_id=rider_id,
                    metadata={"kind": booking.kind.value, "ride_id": ride_id, "seats_booked": seats}
                )
        except IntegrityError:
            async def live_booking_exists() -> Optional[str]:
                if await booking_ledger.find_confirmed_direct(db, ride_id, rider_id) is not None:
                    return "You already have a confirmed booking for this ride."
                return None

            return await MarketplaceService._resolve_race(
                db, rider_id, key, IdempotencyKind.BOOKING, live_booking_exists
            )
        except ConflictError as error:
            return await MarketplaceService._replay_or_raise(db, rider_id, key, IdempotencyKind.BOOKING, error)

        logger.info("Booking %s created: ride=%s rider=%s seats=%s", booking.id, ride_id, rider_id, seats)
        return MutationResult(booking, created=True)

    @staticmethod
    async def cancel_booking(db: AsyncSession, identity: dict, booking_id: int) -> dict:
        """
        Cancel a direct booking as its rider and return its seats.

        Returns:
            {"booking_id", "status", "message"}
        """
        rider_id = identity["user_id"]

        async with unit_of_work(db):
            booking, changed = await booking_ledger.cancel_booking(db, booking_id, rider_id)

            if changed:
                await audit.log_event(
                    db, AuditAction.BOOKING_CANCELLED, "booking", booking.id, actor_id=rider_id,
                    metadata={"ride_id": booking.ride_id, "seats_released": booking.seats_booked}
                )

        return {
            "booking_id": booking.id,
            "status": BookingStatus.CANCELLED,
            "message": "Booking cancelled successfully." if changed else "Booking already cancelled.",
        }
