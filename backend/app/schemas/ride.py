"""
Ride Pydantic schemas.

Defines request and response models for posting and browsing rides.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List

from backend.app.core.clock import to_naive_utc
from backend.app.models.enums import DistanceCategory, RideStatus


def trim_text(value: str) -> str:
    return value.strip() if isinstance(value, str) else value


def clean_note(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise ValueError("must not be empty after trimming")
    return value


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    return to_naive_utc(value) if value is not None else None


class RideCreate(BaseModel):
    """Schema for posting a new ride. The driver is always the caller."""
    origin_text: str = Field(..., min_length=3, max_length=200, description="Pickup area")
    destination_text: str = Field(..., min_length=3, max_length=200, description="Drop-off area")
    earliest_depart_at: datetime
    latest_depart_at: datetime
    preferred_depart_at: Optional[datetime] = None
    distance_category: DistanceCategory
    price_cents: int = Field(..., ge=0, description="Price per seat in cents")
    seats_total: int = Field(..., ge=1, le=8)
    pickup_instructions: Optional[str] = Field(None, max_length=500)
    dropoff_instructions: Optional[str] = Field(None, max_length=500)

    @field_validator("origin_text", "destination_text", mode="before")
    @classmethod
    def trim_route(cls, v):
        return trim_text(v)

    @field_validator("pickup_instructions", "dropoff_instructions")
    @classmethod
    def clean_notes(cls, v: Optional[str]) -> Optional[str]:
        return clean_note(v)

    @field_validator("earliest_depart_at", "latest_depart_at", "preferred_depart_at")
    @classmethod
    def normalize_times(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(v)


class RideResponse(BaseModel):
    """Schema for ride response."""
    id: int
    driver_id: str
    origin_text: str
    destination_text: str
    earliest_depart_at: datetime
    latest_depart_at: datetime
    preferred_depart_at: Optional[datetime]
    distance_category: DistanceCategory
    price_cents: int
    seats_total: int
    seats_available: int
    pickup_instructions: Optional[str]
    dropoff_instructions: Optional[str]
    status: RideStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RideListResponse(BaseModel):
    """Schema for one keyset page of rides."""
    items: List[RideResponse]
    next_cursor: Optional[str] = None
