"""
Customer booking endpoints with concurrency-safe table reservation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import NotFoundError
from venue_booking.core.security import CurrentUser, get_current_user, get_optional_user
from venue_booking.db.session import get_db
from venue_booking.schemas.booking import BookingCreate, BookingResponse
from venue_booking.services.booking_service import create_booking, get_booking
from venue_booking.services.cache_service import invalidate_event_cache
from venue_booking.services.hold_service import HoldManager
from venue_booking.services.notification_service import Notifier, notify_safely
from venue_booking.services.strategy_factory import get_hold_manager, get_notifier

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    user: Optional[CurrentUser] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
    hold_manager: HoldManager = Depends(get_hold_manager),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Book a table (or tickets for a ticket-only event) after checkout.

    Availability is validated again inside the write transaction, whatever
    an earlier hold or validate-table call said. The loser of a race for
    the same table gets 409.
    """
    booking = await create_booking(
        db,
        booking_data,
        user_id=user.id if user else None,
        hold_manager=hold_manager,
    )
    await invalidate_event_cache()
    await notify_safely("booking_confirmation", notifier.send_booking_confirmation, booking)
    return booking


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Staff see every booking; customers only their own."""
    booking = await get_booking(db, booking_id)
    if not user.is_staff and booking.user_id != user.id:
        raise NotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
    return booking
