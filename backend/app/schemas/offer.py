"""
Offer Pydantic schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional

from backend.app.models.enums import OfferStatus
from backend.app.schemas.booking import MatchedBookingResponse


class OfferCreate(BaseModel):
    """Schema for a driver's offer on a trip request."""
    seats_offered: int = Field(..., ge=1, le=8)
    price_cents: int = Field(..., ge=0)
    message: Optional[str] = Field(None, max_length=500)

    @field_validator("message")
    @classmethod
    def blank_message_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class OfferResponse(BaseModel):
    """Schema for offer response."""
    id: int
    trip_request_id: int
    driver_id: str
    rider_id: str
    seats_offered: int
    price_cents: int
    message: Optional[str]
    status: OfferStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OfferAcceptResponse(BaseModel):
    """The accepted offer together with the booking that backs it."""
    offer: OfferResponse
    booking: MatchedBookingResponse
