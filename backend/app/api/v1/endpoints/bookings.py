"""
Booking API Endpoints.

Direct bookings on posted rides, their cancellation, and the caller's
booking history.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_current_user, require_idempotency_key
from backend.app.db.session import get_db
from backend.app.domain.marketplace.orchestrator import MarketplaceService
from backend.app.models.enums import BookingStatus
from backend.app.schemas.booking import (
    BookingCancelResponse,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    booking_response,
)
from backend.app.services import browse

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    response: Response,
    current_user: dict = Depends(get_current_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db)
):
    """
    Book seats on a ride as the current user (rider).

    Fails with 409 when the ride is not active, has departed, lacks seats,
    or the rider already holds a confirmed booking on it.
    """
    result = await MarketplaceService.create_booking(
        db, current_user, idempotency_key, booking_data.ride_id, booking_data.seats_booked
    )
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return booking_response(result.entity)


@router.get("/mine", response_model=BookingListResponse)
async def list_my_bookings(
    booking_status: BookingStatus = Query(BookingStatus.CONFIRMED, alias="status"),
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, description="1-50, default 20"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """The current user's bookings (both flows), newest first."""
    bookings, next_cursor = await browse.list_my_bookings(
        db,
        rider_id=current_user["user_id"],
        status=booking_status,
        cursor=cursor,
        limit=limit,
    )
    return BookingListResponse(
        items=[booking_response(booking) for booking in bookings],
        next_cursor=next_cursor
    )


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Cancel a direct booking (its rider only) and return the seats to the ride."""
    return await MarketplaceService.cancel_booking(db, current_user, booking_id)
