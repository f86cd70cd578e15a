"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    UPCOMING = "upcoming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, enum.Enum):
    HELD = "held"
    RELEASED = "released"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class Role(str, enum.Enum):
    DRIVER = "driver"
    PASSENGER = "passenger"


class NotificationType(str, enum.Enum):
    BOOKING_REQUEST = "booking_request"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_DECLINED = "booking_declined"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_AUTO_RELEASED = "booking_auto_released"
    RIDE_COMPLETED = "ride_completed"
    RIDE_CANCELLED = "ride_cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.UPCOMING: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.ACCEPTED,
        BookingStatus.DECLINED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.ACCEPTED: {BookingStatus.CANCELLED, BookingStatus.COMPLETED},
    BookingStatus.DECLINED: set(),
    BookingStatus.CANCELLED: set(),
    BookingStatus.COMPLETED: set(),
}

# Bookings in these states block the passenger from booking the ride again
ACTIVE_BOOKING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.ACCEPTED})

# Capability table: which party may drive a booking into each target status
BOOKING_AUTHORITY: dict[BookingStatus, Role] = {
    BookingStatus.ACCEPTED: Role.DRIVER,
    BookingStatus.DECLINED: Role.DRIVER,
    BookingStatus.CANCELLED: Role.PASSENGER,
    BookingStatus.COMPLETED: Role.PASSENGER,
}

# Targets reachable through the generic status-update endpoint
UPDATABLE_BOOKING_STATUSES = frozenset(
    {BookingStatus.ACCEPTED, BookingStatus.DECLINED, BookingStatus.CANCELLED}
)
