"""
Trip Request API Endpoints.

Riders post trip requests; drivers browse them and make offers.
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_current_user, require_idempotency_key
from backend.app.db.session import get_db
from backend.app.domain.marketplace.orchestrator import MarketplaceService
from backend.app.models.enums import DistanceCategory
from backend.app.schemas.offer import OfferCreate, OfferResponse
from backend.app.schemas.trip_request import TripRequestCreate, TripRequestListResponse, TripRequestResponse
from backend.app.services import browse

router = APIRouter(prefix="/trip-requests", tags=["Trip Requests"])


@router.post("", response_model=TripRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_trip_request(
    trip_request_data: TripRequestCreate,
    response: Response,
    current_user: dict = Depends(get_current_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db)
):
    """Post a trip request as the current user (rider). Replay-safe per Idempotency-Key."""
    result = await MarketplaceService.create_trip_request(db, current_user, idempotency_key, trip_request_data)
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result.entity


@router.get("", response_model=TripRequestListResponse)
async def list_trip_requests(
    earliest_after: Optional[datetime] = Query(None, description="Defaults to now"),
    latest_before: Optional[datetime] = Query(None),
    distance_category: Optional[DistanceCategory] = Query(None),
    seats_max: Optional[int] = Query(None, ge=1, le=8),
    cursor: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, description="1-50, default 20"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Browse open trip requests, ordered by earliest desired time then id."""
    trip_requests, next_cursor = await browse.list_trip_requests(
        db,
        earliest_after=earliest_after,
        latest_before=latest_before,
        distance_category=distance_category,
        seats_max=seats_max,
        cursor=cursor,
        limit=limit,
    )
    return TripRequestListResponse(
        items=[TripRequestResponse.model_validate(trip_request) for trip_request in trip_requests],
        next_cursor=next_cursor
    )


@router.post("/{trip_request_id}/offers", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    offer_data: OfferCreate,
    response: Response,
    trip_request_id: int = Path(..., description="Trip Request ID"),
    current_user: dict = Depends(get_current_user),
    idempotency_key: str = Depends(require_idempotency_key),
    db: AsyncSession = Depends(get_db)
):
    """
    Offer a ride on a trip request as the current user (driver).

    Validates:
    - Trip request exists and is ACTIVE
    - Driver is not the rider
    - Driver has no other PENDING/ACCEPTED offer on it
    """
    result = await MarketplaceService.create_offer(
        db, current_user, idempotency_key, trip_request_id, offer_data
    )
    if not result.created:
        response.status_code = status.HTTP_200_OK
    return result.entity
