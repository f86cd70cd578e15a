"""
Booking authorization.

A booking answers to two principals: the driver of its ride (accept /
decline) and its passenger (cancel / confirm).  Rights are looked up in
``BOOKING_AUTHORITY``; nothing here touches storage.
"""

from __future__ import annotations

from typing import Optional

from .enums import BOOKING_AUTHORITY, BookingStatus, Role
from .exceptions import Forbidden, Unauthenticated


def role_of(actor_id: int, *, driver_id: int, passenger_id: int) -> Optional[Role]:
    if actor_id == driver_id:
        return Role.DRIVER
    if actor_id == passenger_id:
        return Role.PASSENGER
    return None


def authorize_booking_action(
    actor_id: Optional[int],
    *,
    driver_id: int,
    passenger_id: int,
    target: BookingStatus,
) -> Role:
    """Return the actor's role, or raise if it may not request *target*."""
    if actor_id is None:
        raise Unauthenticated("Authentication required")

    required = BOOKING_AUTHORITY.get(target)
    role = role_of(actor_id, driver_id=driver_id, passenger_id=passenger_id)
    if required is None or role != required:
        if required == Role.DRIVER:
            raise Forbidden("Only the driver can update booking status")
        raise Forbidden("Only the passenger can make this change")
    return role


def ensure_participant(actor_id: int, *, driver_id: int, passenger_id: int) -> Role:
    role = role_of(actor_id, driver_id=driver_id, passenger_id=passenger_id)
    if role is None:
        raise Forbidden("You are not a participant of this booking")
    return role
