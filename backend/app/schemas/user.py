"""
User Pydantic schemas.
"""

from pydantic import BaseModel
from datetime import datetime


class UserResponse(BaseModel):
    """Schema for the local user mirror."""
    id: int
    external_id: str
    email: str
    created_at: datetime

    class Config:
        from_attributes = True


class MeResponse(BaseModel):
    """Current user, and whether this request created the local record."""
    user: UserResponse
    created: bool
