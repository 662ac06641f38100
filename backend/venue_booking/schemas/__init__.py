from venue_booking.schemas.user import UserLogin, Token
from venue_booking.schemas.event import EventCreate, EventResponse, EventListResponse, TableAvailability
from venue_booking.schemas.booking import (
    AdminBookingCreate, BookingCreate, BookingResponse, BookingStatusResponse,
    FoodSelection, MarkPaidRequest, ReassignTableRequest, RefundRequest, WineSelection,
)
from venue_booking.schemas.hold import HoldCreate, HoldResponse, HoldValidateRequest, HoldValidateResponse
from venue_booking.schemas.validation import (
    TicketCutoffResponse, ValidateReassignmentRequest, ValidateTableRequest, ValidationResponse,
)
from venue_booking.schemas.payment import (
    PaymentEvent, ReconciliationOutcome, RecoverBookingRequest, RecoverBookingResponse,
    RefundResult, UnmatchedPaymentResponse, WebhookAck,
)

__all__ = [
    "UserLogin", "Token",
    "EventCreate", "EventResponse", "EventListResponse", "TableAvailability",
    "AdminBookingCreate", "BookingCreate", "BookingResponse", "BookingStatusResponse",
    "FoodSelection", "MarkPaidRequest", "ReassignTableRequest", "RefundRequest", "WineSelection",
    "HoldCreate", "HoldResponse", "HoldValidateRequest", "HoldValidateResponse",
    "TicketCutoffResponse", "ValidateReassignmentRequest", "ValidateTableRequest", "ValidationResponse",
    "PaymentEvent", "ReconciliationOutcome", "RecoverBookingRequest", "RecoverBookingResponse",
    "RefundResult", "UnmatchedPaymentResponse", "WebhookAck",
]
