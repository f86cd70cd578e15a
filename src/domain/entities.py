"""
Lifecycle rules applied to ride and booking records.

Patterns used
-------------
- **State Pattern**: ``transition_booking`` / ``transition_ride`` enforce
  the transition tables in :mod:`.enums` on anything carrying a ``status``
  attribute (ORM rows in production, plain objects in tests).
- Seat occupancy is derived from status alone: only an ``accepted``
  booking holds a seat.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from .enums import (
    BOOKING_TRANSITIONS,
    RIDE_TRANSITIONS,
    BookingStatus,
    RideStatus,
)
from .exceptions import InvalidTransition
from .timeutils import as_utc


class _HasBookingStatus(Protocol):
    status: BookingStatus


class _HasRideStatus(Protocol):
    status: RideStatus


def can_transition_booking(current: BookingStatus, target: BookingStatus) -> bool:
    return target in BOOKING_TRANSITIONS.get(BookingStatus(current), set())


def transition_booking(booking: _HasBookingStatus, target: BookingStatus) -> None:
    """Move *booking* to *target* if the transition is legal, else raise."""
    current = BookingStatus(booking.status)
    if not can_transition_booking(current, target):
        raise InvalidTransition(
            f"Cannot move booking from {current.value} to {target.value}"
        )
    booking.status = target


def transition_ride(ride: _HasRideStatus, target: RideStatus) -> None:
    current = RideStatus(ride.status)
    if target not in RIDE_TRANSITIONS.get(current, set()):
        raise InvalidTransition(
            f"Cannot move ride from {current.value} to {target.value}"
        )
    ride.status = target


def occupies_seat(status: BookingStatus) -> bool:
    return BookingStatus(status) == BookingStatus.ACCEPTED


def ensure_ride_open(ride: _HasRideStatus) -> None:
    """Completed and cancelled rides are frozen for booking changes."""
    status = RideStatus(ride.status)
    if status != RideStatus.UPCOMING:
        raise InvalidTransition(f"Ride is {status.value}")


def has_departed(departure_at: datetime, now: datetime) -> bool:
    return as_utc(departure_at) <= as_utc(now)
