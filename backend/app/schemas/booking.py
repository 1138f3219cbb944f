"""
Booking Pydantic schemas.

A booking is exposed as a tagged variant on `kind`: DIRECT bookings
reference a ride, MATCHED bookings reference a trip request and driver.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from backend.app.models.booking import Booking
from backend.app.models.enums import BookingKind, BookingStatus


class BookingCreate(BaseModel):
    """Schema for booking seats on a posted ride. The rider is always the caller."""
    ride_id: int
    seats_booked: int = Field(..., ge=1, le=8)


class _BookingBase(BaseModel):
    id: int
    rider_id: str
    seats_booked: int
    price_cents: Optional[int]
    status: BookingStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DirectBookingResponse(_BookingBase):
    """Seats booked on a driver's posted ride."""
    kind: Literal[BookingKind.DIRECT] = BookingKind.DIRECT
    ride_id: int


class MatchedBookingResponse(_BookingBase):
    """Booking created by accepting a driver's offer on a trip request."""
    kind: Literal[BookingKind.MATCHED] = BookingKind.MATCHED
    trip_request_id: int
    driver_id: str


BookingResponse = Annotated[
    Union[DirectBookingResponse, MatchedBookingResponse],
    Field(discriminator="kind")
]


def booking_response(booking: Booking) -> Union[DirectBookingResponse, MatchedBookingResponse]:
    if booking.kind == BookingKind.DIRECT:
        return DirectBookingResponse.model_validate(booking)
    return MatchedBookingResponse.model_validate(booking)


class BookingCancelResponse(BaseModel):
    """Acknowledgement returned by booking cancellation."""
    booking_id: int
    status: BookingStatus
    message: str


class BookingListResponse(BaseModel):
    """Schema for one keyset page of the caller's bookings."""
    items: List[BookingResponse]
    next_cursor: Optional[str] = None
