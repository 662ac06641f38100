"""
Payment reconciliation and recovery schemas.

`PaymentEvent` is the provider-neutral shape every adapter parses webhook
payloads into; nothing past the webhook route sees raw provider JSON.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from venue_booking.schemas.booking import BookingCreate


class PaymentEvent(BaseModel):
    id: str = Field(..., min_length=1)  # provider event / idempotency id
    type: str
    payment_reference: Optional[str] = None
    amount: Optional[int] = None  # cents
    payload: dict = Field(default_factory=dict)


class ReconciliationOutcome(BaseModel):
    event_id: str
    event_type: str
    outcome: str  # confirmed, refunded, cancelled, duplicate, skipped, unmatched, conflict, ignored
    booking_id: Optional[int] = None
    status: Optional[str] = None


class WebhookAck(BaseModel):
    received: bool = True
    event_id: str
    type: str
    outcome: str


class RefundResult(BaseModel):
    refund_id: str
    status: str
    amount: Optional[int] = None


class RecoverBookingRequest(BaseModel):
    payment_reference: str = Field(..., min_length=1, max_length=255)
    booking: BookingCreate
    verify_payment: bool = True


class RecoverBookingResponse(BaseModel):
    created: bool
    booking_id: int
    status: str


class UnmatchedPaymentResponse(BaseModel):
    id: int
    provider_event_id: Optional[str]
    event_type: str
    payment_reference: str
    amount: Optional[int]
    reason: str
    resolved_booking_id: Optional[int]
    resolved_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}
