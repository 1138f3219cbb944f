"""
Ride API Endpoints.

Drivers post rides with a fixed seat inventory; anyone signed in can browse.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_current_user, require_idempotency_key
from backend.app.db.session import get_db
from backend.app.domain.marketplace.orchestrator import MarketplaceService
from backend.app.models.enums import DistanceCategory
from backend.app.schemas.ride import RideCreate, RideListResponse, RideResponse
from backend.app.services import browse

router = APIRouter(prefix="/rides", tags=["Rides"])


@router.post("", response_model=RideResponse, status_code=status.HTTP_201_CREATED)
async def create_ride(
    ride_data: RideCreate,
    response: Response,
    current_user: dict = Depends(get_current_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db)
):
    """
    Post a ride as the current user (driver).

    Replay-safe: repeating the request with the same Idempotency-Key
    returns the original ride with 200 instead of 201.
    """
    result = await MarketplaceService.create_ride(db, current_user, idempotency_key, ride_data)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result.entity


@router.get("", response_model=RideListResponse)
async def list_rides(
    earliest_after: Optional[datetime] = Query(None, description="Defaults to now"),
    latest_before: Optional[datetime] = Query(None),
    distance_category: Optional[DistanceCategory] = Query(None),
    seats_min: Optional[int] = Query(None, ge=1, le=8),
    include_full: bool = Query(False, description="Also show rides with no seats left"),
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, description="1-50, default 20"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Browse upcoming ACTIVE rides, ordered by earliest departure then id."""
    rides, next_cursor = await browse.list_rides(
        db,
        earliest_after=earliest_after,
        latest_before=latest_before,
        distance_category=distance_category,
        seats_min=seats_min,
        include_full=include_full,
        cursor=cursor,
        limit=limit,
    )
    return RideListResponse(
        items=[RideResponse.model_validate(ride) for ride in rides],
        next_cursor=next_cursor
    )
