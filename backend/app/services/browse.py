"""
Browse queries with keyset pagination.

Rides and trip requests are ordered by (earliest time asc, id asc); the
caller's bookings by (created_at desc, id desc). The cursor is an opaque
base64 encoding of the last row's (timestamp, id).
"""

import base64
import binascii
import json
from datetime import datetime
from typing import List, Optional, Tuple
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow, to_naive_utc
from backend.app.core.config import settings
from backend.app.core.exceptions import DomainValidationError
from backend.app.models.booking import Booking
from backend.app.models.enums import BookingStatus, DistanceCategory, RideStatus, TripRequestStatus
from backend.app.models.ride import Ride
from backend.app.models.trip_request import TripRequest


def encode_cursor(timestamp: datetime, row_id: int) -> str:
    payload = json.dumps({"id": row_id, "timestamp": timestamp.isoformat()})
    return base64.urlsafe_b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> Tuple[datetime, int]:
    """
    Raises:
        DomainValidationError: If the cursor was not produced by encode_cursor
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8"))
        timestamp = to_naive_utc(datetime.fromisoformat(payload["timestamp"]))
        row_id = int(payload["id"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError):
        raise DomainValidationError("Invalid cursor.", field="cursor")
    return timestamp, row_id


def resolve_limit(limit: Optional[int]) -> int:
    if limit is None:
        return settings.default_page_limit
    if limit < 1 or limit > settings.max_page_limit:
        raise DomainValidationError(
            f"limit must be between 1 and {settings.max_page_limit}.", field="limit"
        )
    return limit


async def _page(db: AsyncSession, query, limit: int, time_attr: str):
    result = await db.execute(query.limit(limit + 1))
    rows = list(result.scalars().all())

    next_cursor = None
    if len(rows) > limit:
        rows = rows[:limit]
        last = rows[-1]
        next_cursor = encode_cursor(getattr(last, time_attr), last.id)

    return rows, next_cursor


async def list_rides(
    db: AsyncSession,
    earliest_after: Optional[datetime] = None,
    latest_before: Optional[datetime] = None,
    distance_category: Optional[DistanceCategory] = None,
    seats_min: Optional[int] = None,
    include_full: bool = False,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> Tuple[List[Ride], Optional[str]]:
    """
    Browse ACTIVE rides that have not departed.

    Args:
        earliest_after: Only rides whose earliest departure is at or after this (default now)
        latest_before: Only rides whose latest departure is at or before this
        distance_category: Exact category match
        seats_min: Only rides with at least this many seats left
        include_full: When False, rides with no seats left are hidden
    """
    now = utcnow()
    limit = resolve_limit(limit)
    earliest_after = to_naive_utc(earliest_after) if earliest_after is not None else now

    query = select(Ride).where(
        Ride.status == RideStatus.ACTIVE,
        Ride.latest_depart_at > now,
        Ride.earliest_depart_at >= earliest_after,
    )

    if latest_before is not None:
        query = query.where(Ride.latest_depart_at <= to_naive_utc(latest_before))

    if distance_category is not None:
        query = query.where(Ride.distance_category == distance_category)

    if seats_min is not None:
        query = query.where(Ride.seats_available >= seats_min)
    elif not include_full:
        query = query.where(Ride.seats_available >= 1)

    if cursor:
        after_time, after_id = decode_cursor(cursor)
        query = query.where(
            or_(
                Ride.earliest_depart_at > after_time,
                and_(Ride.earliest_depart_at == after_time, Ride.id > after_id),
            )
        )

    query = query.order_by(Ride.earliest_depart_at.asc(), Ride.id.asc())
    return await _page(db, query, limit, "earliest_depart_at")


async def list_trip_requests(
    db: AsyncSession,
    earliest_after: Optional[datetime] = None,
    latest_before: Optional[datetime] = None,
    distance_category: Optional[DistanceCategory] = None,
    seats_max: Optional[int] = None,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> Tuple[List[TripRequest], Optional[str]]:
    """
    Browse ACTIVE trip requests whose window has not passed.

    `seats_max` lets a driver hide requests needing more seats than they have.
    """
    now = utcnow()
    limit = resolve_limit(limit)
    earliest_after = to_naive_utc(earliest_after) if earliest_after is not None else now

    query = select(TripRequest).where(
        TripRequest.status == TripRequestStatus.ACTIVE,
        TripRequest.latest_desired_at > now,
        TripRequest.earliest_desired_at >= earliest_after,
    )

    if latest_before is not None:
        query = query.where(TripRequest.latest_desired_at <= to_naive_utc(latest_before))

    if distance_category is not None:
        query = query.where(TripRequest.distance_category == distance_category)

    if seats_max is not None:
        query = query.where(TripRequest.seats_needed <= seats_max)

    if cursor:
        after_time, after_id = decode_cursor(cursor)
        query = query.where(
            or_(
                TripRequest.earliest_desired_at > after_time,
                and_(TripRequest.earliest_desired_at == after_time, TripRequest.id > after_id),
            )
        )

    query = query.order_by(TripRequest.earliest_desired_at.asc(), TripRequest.id.asc())
    return await _page(db, query, limit, "earliest_desired_at")


async def list_my_bookings(
    db: AsyncSession,
    rider_id: str,
    status: BookingStatus = BookingStatus.CONFIRMED,
    cursor: Optional[str] = None,
    limit: Optional[int] = None,
) -> Tuple[List[Booking], Optional[str]]:
    """The rider's bookings of one status, newest first."""
    limit = resolve_limit(limit)

    query = select(Booking).where(
        Booking.rider_id == rider_id,
        Booking.status == status,
    )

    if cursor:
        before_time, before_id = decode_cursor(cursor)
        query = query.where(
            or_(
                Booking.created_at < before_time,
                and_(Booking.created_at == before_time, Booking.id < before_id),
            )
        )

    query = query.order_by(Booking.created_at.desc(), Booking.id.desc())
    return await _page(db, query, limit, "created_at")
