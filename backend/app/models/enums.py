"""
Marketplace enumerations.

Values equal names, so the stored enum label is the same on
PostgreSQL and SQLite and can be used in partial index predicates.
"""

import enum


class DistanceCategory(str, enum.Enum):
    """Rough trip length, chosen by the poster."""
    SHORT = "SHORT"
    MEDIUM = "MEDIUM"
    LONG = "LONG"


class RideStatus(str, enum.Enum):
    """Ride status enumeration. Rides are only ever ACTIVE for now."""
    ACTIVE = "ACTIVE"


class TripRequestStatus(str, enum.Enum):
    """Trip request status enumeration."""
    ACTIVE = "ACTIVE"  # Open for offers
    CLOSED = "CLOSED"  # An offer was accepted
    CANCELLED = "CANCELLED"  # Withdrawn by the rider


class OfferStatus(str, enum.Enum):
    """Offer status enumeration."""
    PENDING = "PENDING"  # Waiting for the rider
    ACCEPTED = "ACCEPTED"  # Chosen by the rider, backed by a booking
    CANCELLED = "CANCELLED"  # Withdrawn, rejected by acceptance of another offer, or undone


NON_TERMINAL_OFFER_STATUSES = (OfferStatus.PENDING, OfferStatus.ACCEPTED)


class BookingStatus(str, enum.Enum):
    """Booking status enumeration."""
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class BookingKind(str, enum.Enum):
    """Which flow produced a booking."""
    DIRECT = "DIRECT"  # Rider booked seats on a posted ride
    MATCHED = "MATCHED"  # Created by accepting an offer on a trip request


class IdempotencyKind(str, enum.Enum):
    """Operation kinds covered by the idempotency ledger."""
    RIDE = "RIDE"
    TRIP_REQUEST = "TRIP_REQUEST"
    OFFER = "OFFER"
    BOOKING = "BOOKING"
