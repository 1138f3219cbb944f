"""
Trip request Pydantic schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List

from backend.app.models.enums import DistanceCategory, TripRequestStatus
from backend.app.schemas.ride import as_naive_utc, clean_note, trim_text


class TripRequestCreate(BaseModel):
    """Schema for posting a trip request. The rider is always the caller."""
    origin_text: str = Field(..., min_length=3, max_length=200)
    destination_text: str = Field(..., min_length=3, max_length=200)
    earliest_desired_at: datetime
    latest_desired_at: datetime
    preferred_desired_at: Optional[datetime] = None
    distance_category: DistanceCategory
    seats_needed: int = Field(..., ge=1, le=8)
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

    @field_validator("earliest_desired_at", "latest_desired_at", "preferred_desired_at")
    @classmethod
    def normalize_times(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(v)


class TripRequestResponse(BaseModel):
    """Schema for trip request response."""
    id: int
    rider_id: str
    origin_text: str
    destination_text: str
    earliest_desired_at: datetime
    latest_desired_at: datetime
    preferred_desired_at: Optional[datetime]
    distance_category: DistanceCategory
    seats_needed: int
    pickup_instructions: Optional[str]
    dropoff_instructions: Optional[str]
    status: TripRequestStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TripRequestListResponse(BaseModel):
    """Schema for one keyset page of trip requests."""
    items: List[TripRequestResponse]
    next_cursor: Optional[str] = None
