"""
Local user mirror.

Users are created lazily from the verified identity on their first
authenticated write.
"""

import logging
from typing import Tuple
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.user import User

logger = logging.getLogger("campus_rides.users")


async def get_user(db: AsyncSession, external_id: str) -> User | None:
    result = await db.execute(select(User).where(User.external_id == external_id))
    return result.scalar_one_or_none()


async def ensure_user(db: AsyncSession, identity: dict) -> Tuple[User, bool]:
    """
    Upsert the local user for a verified identity.

    Runs in its own short transaction so the marketplace unit of work
    that follows can reference the user by foreign key.

    Args:
        db: Database session
        identity: {"user_id": ..., "email": ...} from get_current_user

    Returns:
        (user, created)
    """
    external_id = identity["user_id"]
    email = identity["email"]

    user = await get_user(db, external_id)
    if user is not None:
        if user.email != email:
            user.email = email
        # Also ends the transaction opened by the lookup
        await db.commit()
        return user, False

    user = User(external_id=external_id, email=email)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Another request created the same user first
        await db.rollback()
        user = await get_user(db, external_id)
        await db.commit()
        return user, False

    logger.info("Created local user %s", external_id)
    return user, True
