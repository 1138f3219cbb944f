"""
Ride database model.

A ride is posted by a driver with a fixed seat inventory that riders
book directly.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, CheckConstraint, Index
from sqlalchemy.sql import func
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.enums import DistanceCategory, RideStatus


class Ride(Base):
    """
    Ride model.

    `seats_available` is written only by the inventory ledger through
    conditional arithmetic updates. The CHECK constraint keeps
    0 <= seats_available <= seats_total even if that contract is broken.
    """
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    driver_id = Column(String(255), ForeignKey('users.external_id'), nullable=False, index=True)

    # Route
    origin_text = Column(String(200), nullable=False)
    destination_text = Column(String(200), nullable=False)
    distance_category = Column(Enum(DistanceCategory), nullable=False)

    # Departure window
    earliest_depart_at = Column(DateTime, nullable=False)
    latest_depart_at = Column(DateTime, nullable=False)
    preferred_depart_at = Column(DateTime, nullable=True)

    # Price is carried through, never settled
    price_cents = Column(Integer, nullable=False)

    # Seat inventory
    seats_total = Column(Integer, nullable=False)
    seats_available = Column(Integer, nullable=False)

    pickup_instructions = Column(String(500), nullable=True)
    dropoff_instructions = Column(String(500), nullable=True)

    status = Column(Enum(RideStatus), default=RideStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('seats_total >= 1', name='ck_rides_seats_total_positive'),
        CheckConstraint(
            'seats_available >= 0 AND seats_available <= seats_total',
            name='ck_rides_seats_available_bounds'
        ),
        CheckConstraint('latest_depart_at > earliest_depart_at', name='ck_rides_window_order'),
        CheckConstraint('price_cents >= 0', name='ck_rides_price_non_negative'),
        # Browse order: (earliest_depart_at, id)
        Index('ix_rides_status_earliest_id', 'status', 'earliest_depart_at', 'id'),
    )

    def __repr__(self):
        return (
            f"<Ride(id={self.id}, driver_id='{self.driver_id}', "
            f"seats={self.seats_available}/{self.seats_total})>"
        )
