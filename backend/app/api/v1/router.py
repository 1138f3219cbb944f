"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import me, rides, trip_requests, offers, bookings

router = APIRouter()

# Identity
router.include_router(me.router)

# Direct flow: rides and bookings
router.include_router(rides.router)
router.include_router(bookings.router)

# Matched flow: trip requests and offers
router.include_router(trip_requests.router)
router.include_router(offers.router)
