"""
Idempotency record database model.

Maps (actor, client key, operation kind) to the entity the first request
with that triple created.
"""

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func
from backend.app.core.clock import utcnow
from backend.app.db.session import Base
from backend.app.models.enums import IdempotencyKind


class IdempotencyRecord(Base):
    """
    Idempotency ledger row.

    Exactly one entity reference is set, and it is the one matching
    `kind`. Rows are never updated; a row whose entity is missing is
    deleted by the ledger and the request is processed as new.
    """
    __tablename__ = "idempotency_records"

    # kind -> reference column
    REFERENCE_COLUMNS = {
        IdempotencyKind.RIDE: "ride_id",
        IdempotencyKind.TRIP_REQUEST: "trip_request_id",
        IdempotencyKind.OFFER: "offer_id",
        IdempotencyKind.BOOKING: "booking_id",
    }

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    actor_id = Column(String(255), ForeignKey('users.external_id'), nullable=False)
    idempotency_key = Column(String(255), nullable=False)
    kind = Column(Enum(IdempotencyKind), nullable=False)

    ride_id = Column(Integer, ForeignKey('rides.id'), nullable=True)
    trip_request_id = Column(Integer, ForeignKey('trip_requests.id'), nullable=True)
    offer_id = Column(Integer, ForeignKey('offers.id'), nullable=True)
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=True)

    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('actor_id', 'idempotency_key', 'kind', name='uq_idempotency_actor_key_kind'),
        CheckConstraint(
            "(kind = 'RIDE' AND ride_id IS NOT NULL AND trip_request_id IS NULL "
            "AND offer_id IS NULL AND booking_id IS NULL) OR "
            "(kind = 'TRIP_REQUEST' AND trip_request_id IS NOT NULL AND ride_id IS NULL "
            "AND offer_id IS NULL AND booking_id IS NULL) OR "
            "(kind = 'OFFER' AND offer_id IS NOT NULL AND ride_id IS NULL "
            "AND trip_request_id IS NULL AND booking_id IS NULL) OR "
            "(kind = 'BOOKING' AND booking_id IS NOT NULL AND ride_id IS NULL "
            "AND trip_request_id IS NULL AND offer_id IS NULL)",
            name='ck_idempotency_single_reference'
        ),
    )

    @property
    def reference_id(self):
        return getattr(self, self.REFERENCE_COLUMNS[self.kind])

    def __repr__(self):
        return (
            f"<IdempotencyRecord(actor_id='{self.actor_id}', key='{self.idempotency_key}', "
            f"kind='{self.kind.value}', ref={self.reference_id})>"
        )
