"""
Booking-engine error taxonomy.

Every error carries the HTTP ``status_code`` it maps to and a stable
machine-readable ``code`` so the API layer can render it without a lookup
table.
"""


class BookingError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class Unauthenticated(BookingError):
    status_code = 401
    code = "unauthenticated"


class Forbidden(BookingError):
    status_code = 403
    code = "forbidden"


class NotFound(BookingError):
    status_code = 404
    code = "not_found"


class InvalidTransition(BookingError):
    """A state-machine precondition failed."""

    code = "invalid_transition"


class ConfirmationWindowClosed(InvalidTransition):
    code = "confirmation_window_closed"


class Conflict(BookingError):
    """Inventory exhausted or a uniqueness race was lost."""

    code = "conflict"


class NoSeatsAvailable(Conflict):
    code = "no_seats_available"


class DuplicateBooking(Conflict):
    code = "duplicate_booking"


class DuplicateReview(Conflict):
    code = "duplicate_review"


class ValidationError(BookingError):
    code = "validation_error"


class InvalidStatusValue(ValidationError):
    code = "invalid_status_value"


class LedgerIntegrityError(Exception):
    """A seat release found nothing to release; the ledger is out of sync."""
