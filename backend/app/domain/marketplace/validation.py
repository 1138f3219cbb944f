"""
Entity-creation rules.

Request schemas already enforce these, but the marketplace re-checks them
at the point of creation so no caller can persist an invalid entity.
"""

from datetime import datetime, timedelta
from typing import Optional

from backend.app.core.clock import utcnow, to_naive_utc
from backend.app.core.config import settings
from backend.app.core.exceptions import DomainValidationError


def validate_text(value: str, field: str, min_length: int = 3, max_length: int = 200) -> str:
    value = (value or "").strip()
    if not min_length <= len(value) <= max_length:
        raise DomainValidationError(
            f"{field} must be between {min_length} and {max_length} characters after trimming.", field=field
        )
    return value


def validate_note(value: Optional[str], field: str, max_length: int = 500) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        raise DomainValidationError(f"{field} must not be empty after trimming.", field=field)
    if len(value) > max_length:
        raise DomainValidationError(f"{field} must be {max_length} characters or fewer.", field=field)
    return value


def validate_seats(seats: int, field: str) -> int:
    if seats < 1 or seats > settings.max_seats:
        raise DomainValidationError(
            f"{field} must be an integer between 1 and {settings.max_seats}.", field=field
        )
    return seats


def validate_price(price_cents: int, field: str = "price_cents") -> int:
    if price_cents < 0:
        raise DomainValidationError(f"{field} must be a non-negative integer.", field=field)
    return price_cents


def validate_window(
    earliest: datetime,
    latest: datetime,
    preferred: Optional[datetime],
    prefix: str,
    now: Optional[datetime] = None,
) -> tuple[datetime, datetime, Optional[datetime]]:
    """
    Check a time window and return it as naive UTC.

    `prefix` names the fields, e.g. "depart" for earliest_depart_at.
    The earliest time may lie up to `clock_skew_grace_minutes` in the past.
    """
    now = now or utcnow()
    earliest = to_naive_utc(earliest)
    latest = to_naive_utc(latest)
    preferred = to_naive_utc(preferred) if preferred is not None else None

    earliest_field = f"earliest_{prefix}_at"
    latest_field = f"latest_{prefix}_at"
    preferred_field = f"preferred_{prefix}_at"

    if latest <= earliest:
        raise DomainValidationError(
            f"{latest_field} must be strictly after {earliest_field}.", field=latest_field
        )
    if latest - earliest > timedelta(hours=settings.max_window_hours):
        raise DomainValidationError(
            f"Window must be {settings.max_window_hours} hours or less.", field=latest_field
        )
    if earliest < now - timedelta(minutes=settings.clock_skew_grace_minutes):
        raise DomainValidationError(
            f"{earliest_field} must not be in the past "
            f"({settings.clock_skew_grace_minutes}-minute grace allowed).",
            field=earliest_field
        )
    if preferred is not None:
        if preferred < earliest:
            raise DomainValidationError(
                f"{preferred_field} must not be before {earliest_field}.", field=preferred_field
            )
        if preferred > latest:
            raise DomainValidationError(
                f"{preferred_field} must not be after {latest_field}.", field=preferred_field
            )

    return earliest, latest, preferred
