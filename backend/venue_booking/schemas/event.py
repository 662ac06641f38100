"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    date: datetime
    venue_id: int
    event_type: Literal["full", "ticket-only"] = "full"
    total_seats: int = Field(..., gt=0, le=100000)
    total_tables: int = Field(default=0, ge=0, le=1000)
    ticket_cutoff_days: Optional[int] = Field(None, ge=0, le=60)


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    date: datetime
    venue_id: int
    event_type: str
    total_seats: int
    total_tables: int
    available_seats: int
    available_tables: int
    ticket_cutoff_days: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False


class TableAvailability(BaseModel):
    id: int
    table_number: int
    capacity: int
    is_available: bool
