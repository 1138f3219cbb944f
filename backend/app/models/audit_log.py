"""
Audit Log Database Model.

Records every state-changing marketplace transition. Rows are written in
the same transaction as the transition they describe.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - RIDE_CREATED / TRIP_REQUEST_CREATED
    - OFFER_CREATED / OFFER_ACCEPTED / OFFER_CANCELLED
    - BOOKING_CREATED / BOOKING_CANCELLED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action
    actor_id = Column(String(255), index=True, nullable=True)

    # What happened, and to which entity
    action = Column(String(100), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False, index=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
