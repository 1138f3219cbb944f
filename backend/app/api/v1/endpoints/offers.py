"""
Offer API Endpoints.

Acceptance and cancellation of offers on trip requests.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_current_user
from backend.app.db.session import get_db
from backend.app.domain.marketplace.orchestrator import MarketplaceService
from backend.app.schemas.booking import MatchedBookingResponse
from backend.app.schemas.offer import OfferAcceptResponse, OfferResponse

router = APIRouter(prefix="/offers", tags=["Offers"])


@router.post("/{offer_id}/accept", response_model=OfferAcceptResponse)
async def accept_offer(
    offer_id: int = Path(..., description="Offer ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Accept an offer (trip request's rider only).

    Closes the trip request, books the driver and cancels every other
    pending offer, all in one transaction.
    """
    offer, booking = await MarketplaceService.accept_offer(db, current_user, offer_id)
    return OfferAcceptResponse(
        offer=OfferResponse.model_validate(offer),
        booking=MatchedBookingResponse.model_validate(booking)
    )


@router.post("/{offer_id}/cancel", response_model=OfferResponse)
async def cancel_offer(
    offer_id: int = Path(..., description="Offer ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel an offer (its driver or its rider).

    Drivers may only withdraw PENDING offers. Cancelling an accepted offer
    also cancels its booking and reopens the trip request.
    """
    return await MarketplaceService.cancel_offer(db, current_user, offer_id)
