"""
Booking database model.

One table holds both flows:
- DIRECT: ride_id set, trip_request_id and driver_id null
- MATCHED: trip_request_id and driver_id set, ride_id null
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.sql import func
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.enums import BookingKind, BookingStatus

_CONFIRMED = text("status = 'CONFIRMED'")


class Booking(Base):
    """
    Booking model.

    At most one CONFIRMED booking per (ride, rider), and at most one
    CONFIRMED matched booking per trip request.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Direct flow
    ride_id = Column(Integer, ForeignKey('rides.id'), nullable=True, index=True)

    # Matched flow
    trip_request_id = Column(Integer, ForeignKey('trip_requests.id'), nullable=True, index=True)
    driver_id = Column(String(255), ForeignKey('users.external_id'), nullable=True)

    rider_id = Column(String(255), ForeignKey('users.external_id'), nullable=False)
    seats_booked = Column(Integer, nullable=False)
    price_cents = Column(Integer, nullable=True)

    status = Column(Enum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False)

    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('seats_booked >= 1', name='ck_bookings_seats_positive'),
        CheckConstraint(
            '(ride_id IS NOT NULL AND trip_request_id IS NULL AND driver_id IS NULL) OR '
            '(ride_id IS NULL AND trip_request_id IS NOT NULL AND driver_id IS NOT NULL)',
            name='ck_bookings_single_flow'
        ),
        Index('ix_bookings_rider_status_created', 'rider_id', 'status', 'created_at'),
        Index(
            'uq_bookings_confirmed_per_ride_rider', 'ride_id', 'rider_id', unique=True,
            postgresql_where=_CONFIRMED, sqlite_where=_CONFIRMED
        ),
        Index(
            'uq_bookings_confirmed_per_trip_request', 'trip_request_id', unique=True,
            postgresql_where=_CONFIRMED, sqlite_where=_CONFIRMED
        ),
    )

    @property
    def kind(self) -> BookingKind:
        return BookingKind.DIRECT if self.ride_id is not None else BookingKind.MATCHED

    def __repr__(self):
        return f"<Booking(id={self.id}, kind='{self.kind.value}', status='{self.status.value}')>"
