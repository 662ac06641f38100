"""
Pydantic schemas for table holds.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class HoldCreate(BaseModel):
    event_id: int
    table_id: int
    session_id: str = Field(..., min_length=1, max_length=128)


class HoldResponse(BaseModel):
    issued: bool
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


class HoldValidateRequest(BaseModel):
    token: str = Field(..., min_length=1)
    event_id: int
    table_id: int


class HoldValidateResponse(BaseModel):
    valid: bool
    message: str
