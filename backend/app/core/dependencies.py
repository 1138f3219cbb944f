"""
Request dependencies for FastAPI.

Resolves the verified actor identity and the client idempotency key
before any marketplace operation runs.
"""

from typing import Optional
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backend.app.core.config import settings
from backend.app.core.exceptions import DomainValidationError
from backend.app.core.jwt import decode_access_token

# auto_error=False so a missing header is reported as 401, not 403
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """
    FastAPI dependency yielding the verified actor identity.

    Checks:
    1. A bearer token is present and its signature/expiry are valid
    2. The token carries a stable subject id and an email
    3. The email is verified and belongs to the allowed campus domain

    Returns:
        {"user_id": <external id>, "email": <lower-cased email>}

    Raises:
        HTTPException: 401 when unauthenticated, 403 when the email is not allowed
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    email = payload.get("email")
    if not user_id or not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    email = email.strip().lower()
    domain = settings.allowed_email_domain.lower()
    if payload.get("email_verified") is not True or not email.endswith(f"@{domain}"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access restricted to verified @{domain} email addresses.",
        )

    return {"user_id": user_id, "email": email}


async def require_idempotency_key(
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
) -> str:
    """Client-supplied key that makes a create request replay-safe."""
    key = (idempotency_key or "").strip()
    if not key:
        raise DomainValidationError("Idempotency-Key header is required.", field="Idempotency-Key")
    if len(key) > 255:
        raise DomainValidationError("Idempotency-Key must be 255 characters or fewer.", field="Idempotency-Key")
    return key
