"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, EmailStr, Field


class FoodSelection(BaseModel):
    guest_index: int = Field(..., ge=0)
    item_id: int
    name: str = Field(..., min_length=1, max_length=255)
    course: Optional[str] = Field(None, max_length=50)  # salad, entree, dessert
    quantity: int = Field(default=1, gt=0)


class WineSelection(BaseModel):
    id: int
    name: str = Field(..., min_length=1, max_length=255)
    type: Literal["wine_glass", "wine_bottle"]
    quantity: int = Field(..., gt=0)


class BookingCreate(BaseModel):
    event_id: int
    table_id: Optional[int] = None  # omitted for ticket-only events
    customer_email: EmailStr
    party_size: int = Field(..., gt=0)
    guest_names: list[str] = Field(default_factory=list)
    food_selections: list[FoodSelection] = Field(default_factory=list)
    wine_selections: list[WineSelection] = Field(default_factory=list)
    payment_reference: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[int] = Field(None, ge=0)
    hold_token: Optional[str] = None
    session_id: Optional[str] = Field(None, max_length=128)


class AdminBookingCreate(BookingCreate):
    """Backoffice manual booking: held on account (reserved) or complimentary."""

    status: Literal["reserved", "comp"] = "reserved"
    notes: Optional[str] = Field(None, max_length=2000)


class BookingResponse(BaseModel):
    id: int
    event_id: int
    table_id: Optional[int]
    customer_email: str
    party_size: int
    guest_names: list[str]
    food_selections: list[dict]
    wine_selections: list[dict]
    payment_reference: Optional[str]
    amount: Optional[int]
    status: str
    checked_in_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class ReassignTableRequest(BaseModel):
    new_table_id: int


class RefundRequest(BaseModel):
    amount: Optional[int] = Field(None, gt=0)  # cents, defaults to booking amount
    reason: str = Field(default="requested_by_customer", max_length=255)


class MarkPaidRequest(BaseModel):
    amount: int = Field(..., gt=0)  # cents taken at the venue
    payment_reference: Optional[str] = Field(None, min_length=1, max_length=255)


class BookingStatusResponse(BaseModel):
    message: str
    booking_id: int
    status: str
