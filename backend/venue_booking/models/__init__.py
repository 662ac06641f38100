from venue_booking.models.user import User
from venue_booking.models.event import Event
from venue_booking.models.table import VenueTable
from venue_booking.models.booking import Booking
from venue_booking.models.payment import ProcessedWebhookEvent, ReconciliationRecord, UnmatchedPayment

__all__ = [
    "User", "Event", "VenueTable", "Booking",
    "ProcessedWebhookEvent", "ReconciliationRecord", "UnmatchedPayment",
]
