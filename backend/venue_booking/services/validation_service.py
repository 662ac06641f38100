"""
Booking validation: availability, reassignment, cutoff and hold expiry.

AVAILABILITY RULE
=================

A table is free for an event iff no booking in an active status
(confirmed, reserved, comp) references (event_id, table_id). Pending
bookings have not been paid yet and do not occupy the table.

The checks in this module are read-only and may run against a slightly
stale view (the validate-table endpoint, hold creation). They are not what
keeps a table from being sold twice: the booking writer re-runs them inside
the write transaction, and the partial unique index on bookings rejects
whichever writer loses the race.

"Not found" and "unavailable" are different answers. Unknown events and
tables raise NotFoundError; a taken table is a plain False.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.config import get_settings
from venue_booking.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from venue_booking.core.timeutils import as_utc, utcnow
from venue_booking.models.booking import (
    ACTIVE_STATUSES, CANCELLED, COMP, CONFIRMED, PENDING, REFUNDED, RESERVED, Booking,
)
from venue_booking.models.event import Event
from venue_booking.models.table import VenueTable
from venue_booking.schemas.booking import BookingCreate
from venue_booking.services.interfaces.hold_store import hold_expired

settings = get_settings()

ALLOWED_TRANSITIONS = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    RESERVED: frozenset({CONFIRMED, CANCELLED}),
    COMP: frozenset({CANCELLED}),
    CONFIRMED: frozenset({REFUNDED}),
    CANCELLED: frozenset(),
    REFUNDED: frozenset(),
}


async def get_event_or_404(db: AsyncSession, event_id: int, require_active: bool = True) -> Event:
    event = await db.get(Event, event_id)
    if event is None or (require_active and not event.is_active):
        raise NotFoundError(f"Event {event_id} not found", event_id=event_id)
    return event


async def get_table_or_404(db: AsyncSession, table_id: int) -> VenueTable:
    table = await db.get(VenueTable, table_id)
    if table is None or not table.is_active:
        raise NotFoundError(f"Table {table_id} not found", table_id=table_id)
    return table


async def ensure_table_bookable(
    db: AsyncSession,
    table_id: int,
    event_id: int,
    require_active_event: bool = True,
) -> tuple[Event, VenueTable]:
    """
    Resolve (event, table) or raise NotFoundError. A table from another venue,
    or any table on a ticket-only event, does not exist as far as the event
    is concerned.
    """
    event = await get_event_or_404(db, event_id, require_active=require_active_event)
    table = await get_table_or_404(db, table_id)
    if table.venue_id != event.venue_id or event.is_ticket_only:
        raise NotFoundError(
            f"Table {table_id} is not part of event {event_id}",
            table_id=table_id,
            event_id=event_id,
        )
    return event, table


async def find_active_booking(
    db: AsyncSession,
    table_id: int,
    event_id: int,
    exclude_booking_id: Optional[int] = None,
) -> Optional[Booking]:
    query = select(Booking).where(
        Booking.event_id == event_id,
        Booking.table_id == table_id,
        Booking.status.in_(ACTIVE_STATUSES),
    )
    if exclude_booking_id is not None:
        query = query.where(Booking.id != exclude_booking_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def validate_table_availability(db: AsyncSession, table_id: int, event_id: int) -> bool:
    """True iff no active booking references (table_id, event_id)."""
    await ensure_table_bookable(db, table_id, event_id)
    return await find_active_booking(db, table_id, event_id) is None


async def validate_table_reassignment(
    db: AsyncSession,
    new_table_id: int,
    event_id: int,
    exclude_booking_id: Optional[int] = None,
) -> bool:
    """Same rule as availability, ignoring the booking being moved."""
    await ensure_table_bookable(db, new_table_id, event_id, require_active_event=False)
    conflict = await find_active_booking(db, new_table_id, event_id, exclude_booking_id)
    return conflict is None


def ticket_cutoff_time(event_date: datetime, cutoff_days: int) -> datetime:
    return as_utc(event_date) - timedelta(days=cutoff_days)


def is_within_ticket_cutoff(
    event_date: datetime,
    cutoff_days: int,
    now: Optional[datetime] = None,
) -> bool:
    """
    True iff `now <= event_date - cutoff_days`. Exact timestamp arithmetic:
    the boundary instant itself is still inside the window, one microsecond
    later is not.
    """
    now = as_utc(now) if now is not None else utcnow()
    return now <= ticket_cutoff_time(event_date, cutoff_days)


def is_booking_hold_expired(
    hold_start_time: Optional[datetime],
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> bool:
    """Booking-side view of hold expiry. A booking made without a hold (None) is never expired."""
    ttl = ttl if ttl is not None else timedelta(minutes=settings.HOLD_TTL_MINUTES)
    return hold_expired(hold_start_time, ttl, now)


def ensure_transition(current: str, target: str) -> None:
    if target not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(
            f"Cannot move booking from {current} to {target}",
            current=current,
            target=target,
        )


def ensure_reassignable(booking: Booking) -> None:
    if booking.status not in ACTIVE_STATUSES:
        raise InvalidTransitionError(
            f"Booking {booking.id} is {booking.status} and cannot change tables"
        )


def validate_booking_payload(data: BookingCreate, table: Optional[VenueTable]) -> None:
    """Shape rules that pydantic cannot express on its own."""
    if data.party_size > settings.MAX_PARTY_SIZE:
        raise ValidationError(f"Party size is limited to {settings.MAX_PARTY_SIZE} guests")
    if table is not None and data.party_size > table.capacity:
        raise ValidationError(
            f"Table {table.table_number} seats at most {table.capacity} guests"
        )
    if len(data.guest_names) > data.party_size:
        raise ValidationError("More guest names than guests in the party")
    if any(not name.strip() for name in data.guest_names):
        raise ValidationError("Guest names cannot be blank")
    for selection in data.food_selections:
        if selection.guest_index >= data.party_size:
            raise ValidationError(
                f"Food selection for guest {selection.guest_index + 1} exceeds party size"
            )
