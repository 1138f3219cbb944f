"""
Current user endpoint.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import get_current_user
from backend.app.db.session import get_db
from backend.app.schemas.user import MeResponse, UserResponse
from backend.app.services.users import ensure_user

router = APIRouter(prefix="/me", tags=["Users"])


@router.get("", response_model=MeResponse)
async def get_me(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Return the local user for the verified identity, creating it on first call."""
    user, created = await ensure_user(db, current_user)
    return MeResponse(user=UserResponse.model_validate(user), created=created)
