"""
Trip request database model.

A rider asks for a trip; drivers compete for it with offers.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, CheckConstraint, Index
from sqlalchemy.sql import func
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.enums import DistanceCategory, TripRequestStatus


class TripRequest(Base):
    """
    Trip request model.

    ACTIVE -> CLOSED when an offer is accepted, CLOSED -> ACTIVE when that
    acceptance is undone.
    """
    __tablename__ = "trip_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    rider_id = Column(String(255), ForeignKey('users.external_id'), nullable=False, index=True)

    origin_text = Column(String(200), nullable=False)
    destination_text = Column(String(200), nullable=False)
    distance_category = Column(Enum(DistanceCategory), nullable=False)

    earliest_desired_at = Column(DateTime, nullable=False)
    latest_desired_at = Column(DateTime, nullable=False)
    preferred_desired_at = Column(DateTime, nullable=True)

    seats_needed = Column(Integer, nullable=False)

    pickup_instructions = Column(String(500), nullable=True)
    dropoff_instructions = Column(String(500), nullable=True)

    status = Column(Enum(TripRequestStatus), default=TripRequestStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('seats_needed >= 1', name='ck_trip_requests_seats_positive'),
        CheckConstraint('latest_desired_at > earliest_desired_at', name='ck_trip_requests_window_order'),
        Index('ix_trip_requests_status_earliest_id', 'status', 'earliest_desired_at', 'id'),
    )

    def __repr__(self):
        return f"<TripRequest(id={self.id}, rider_id='{self.rider_id}', status='{self.status.value}')>"
