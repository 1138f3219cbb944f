"""
User database model.

A local mirror of an identity-provider account. Rows are created lazily
on the first authenticated write and never deleted.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from backend.app.core.clock import utcnow
from backend.app.db.session import Base


class User(Base):
    """
    User model.

    `external_id` is the stable id issued by the identity provider. Every
    marketplace table references it, not the surrogate key.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    external_id = Column(String(255), unique=True, index=True, nullable=False)
    email = Column(String(255), index=True, nullable=False)

    created_at = Column(DateTime, default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, external_id='{self.external_id}', email='{self.email}')>"
