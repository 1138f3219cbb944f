"""
Offer database model.

Drivers compete for a trip request with offers; the rider accepts one.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.sql import func
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.enums import OfferStatus

_NON_TERMINAL = text("status IN ('PENDING', 'ACCEPTED')")
_ACCEPTED = text("status = 'ACCEPTED'")


class Offer(Base):
    """
    Offer model.

    Two partial unique indexes back the matchmaking invariants:
    - one non-terminal offer per (trip request, driver)
    - one ACCEPTED offer per trip request
    """
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_request_id = Column(Integer, ForeignKey('trip_requests.id'), nullable=False)
    driver_id = Column(String(255), ForeignKey('users.external_id'), nullable=False, index=True)
    # Denormalized from the trip request for indexing
    rider_id = Column(String(255), ForeignKey('users.external_id'), nullable=False, index=True)

    seats_offered = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=False)
    message = Column(String(500), nullable=True)

    status = Column(Enum(OfferStatus), default=OfferStatus.PENDING, nullable=False)

    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('seats_offered >= 1', name='ck_offers_seats_positive'),
        CheckConstraint('price_cents >= 0', name='ck_offers_price_non_negative'),
        Index('ix_offers_trip_request_status', 'trip_request_id', 'status'),
        Index(
            'uq_offers_active_per_driver', 'trip_request_id', 'driver_id', unique=True,
            postgresql_where=_NON_TERMINAL, sqlite_where=_NON_TERMINAL
        ),
        Index(
            'uq_offers_accepted_per_trip_request', 'trip_request_id', unique=True,
            postgresql_where=_ACCEPTED, sqlite_where=_ACCEPTED
        ),
    )

    def __repr__(self):
        return f"<Offer(id={self.id}, trip_request_id={self.trip_request_id}, status='{self.status.value}')>"
