"""
Booking error taxonomy.

Every failure the booking core can report carries a stable tag and the HTTP
status the request boundary maps it to. Route handlers never build these
responses by hand; the handlers registered in `venue_booking.main` do.
"""

from typing import Optional


class BookingError(Exception):
    code = "BOOKING_ERROR"
    status_code = 500
    message = "Booking request failed"

    def __init__(self, message: Optional[str] = None, **context):
        self.message = message or self.message
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class NotFoundError(BookingError):
    """Unknown event, table or booking."""

    code = "NOT_FOUND"
    status_code = 404
    message = "Not found"


class ConflictError(BookingError):
    """The table was taken by someone else (usually the loser of a race)."""

    code = "CONFLICT"
    status_code = 409
    message = "This table was just taken, please choose another."


class InvalidTransitionError(ConflictError):
    code = "INVALID_TRANSITION"
    message = "Booking status does not allow this change"


class ExpiredError(BookingError):
    """Hold or ticket-cutoff window elapsed."""

    code = "EXPIRED"
    status_code = 410
    message = "This offer has expired."


class ValidationError(BookingError):
    """Malformed request shape or booking payload."""

    code = "VALIDATION_ERROR"
    status_code = 400
    message = "Invalid request data"


class UpstreamError(BookingError):
    """Payment provider or notification service failed."""

    code = "UPSTREAM_ERROR"
    status_code = 502
    message = "The payment provider is unavailable, please try again shortly."


class UnmatchedPaymentError(BookingError):
    code = "UNMATCHED"
    status_code = 202
    message = "Payment has no matching booking and was queued for recovery"
