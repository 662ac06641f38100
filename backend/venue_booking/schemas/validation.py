"""
Request/response shapes for the pre-checkout validation endpoints.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class ValidateTableRequest(BaseModel):
    table_id: int
    event_id: int
    hold_start_time: Optional[datetime] = None


class ValidateReassignmentRequest(BaseModel):
    booking_id: Optional[int] = None
    new_table_id: int
    event_id: int


class ValidationResponse(BaseModel):
    valid: bool
    message: str


class TicketCutoffResponse(BaseModel):
    within_cutoff: bool
    event_date: datetime
    cutoff_days: int
    message: str
