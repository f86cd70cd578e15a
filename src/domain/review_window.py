"""
Confirmation & rating window.

The passenger may confirm an accepted booking once the ride has departed
or the driver has marked it complete, and no later than the confirmation
deadline.  The deadline is the one stamped on the booking when the driver
completed the ride, falling back to ``departure + window`` when the driver
never did.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from .entities import has_departed
from .enums import BookingStatus, RideStatus
from .exceptions import ConfirmationWindowClosed, InvalidTransition, ValidationError
from .timeutils import as_utc

MIN_RATING = 1
MAX_RATING = 5
REVIEW_WINDOW = timedelta(hours=24)


def effective_deadline(
    confirm_deadline: Optional[datetime],
    departure_at: datetime,
    window: timedelta,
) -> datetime:
    if confirm_deadline is not None:
        return as_utc(confirm_deadline)
    return as_utc(departure_at) + window


def ensure_confirmable(
    *,
    booking_status: BookingStatus,
    confirmed_at: Optional[datetime],
    ride_status: RideStatus,
    departure_at: datetime,
    confirm_deadline: Optional[datetime],
    now: datetime,
    window: timedelta,
) -> None:
    if BookingStatus(booking_status) != BookingStatus.ACCEPTED:
        raise InvalidTransition("Only accepted bookings can be confirmed")
    if confirmed_at is not None:
        raise InvalidTransition("This ride has already been confirmed")
    if RideStatus(ride_status) == RideStatus.CANCELLED:
        raise InvalidTransition("Ride was cancelled")
    if RideStatus(ride_status) != RideStatus.COMPLETED and not has_departed(
        departure_at, now
    ):
        raise InvalidTransition(
            "Cannot confirm before the driver marks the ride as complete "
            "or before the ride has started"
        )
    if as_utc(now) > effective_deadline(confirm_deadline, departure_at, window):
        raise ConfirmationWindowClosed("The confirmation window has closed")


def validate_rating(
    rating: Optional[int], *, required: bool = False
) -> Optional[int]:
    if rating is None:
        if required:
            raise ValidationError("Rating must be between 1 and 5")
        return None
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be an integer between 1 and 5")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError("Rating must be between 1 and 5")
    return rating


def validate_comment(comment: Optional[str], max_length: int) -> Optional[str]:
    if comment is None:
        return None
    comment = comment.strip()
    if len(comment) > max_length:
        raise ValidationError(f"Comment must be at most {max_length} characters")
    return comment or None


def review_time_remaining(
    completed_at: Optional[datetime], now: datetime
) -> timedelta:
    """Advisory countdown shown next to the review prompt."""
    if completed_at is None:
        return timedelta(0)
    remaining = as_utc(completed_at) + REVIEW_WINDOW - as_utc(now)
    return max(remaining, timedelta(0))
