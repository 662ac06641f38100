"""
Event catalogue: staff-created events, listings and per-table availability.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.config import get_settings
from venue_booking.core.exceptions import NotFoundError, ValidationError
from venue_booking.core.logging import get_logger
from venue_booking.core.timeutils import as_utc, utcnow
from venue_booking.models.booking import ACTIVE_STATUSES, Booking
from venue_booking.models.event import Event
from venue_booking.models.table import VenueTable
from venue_booking.schemas.event import EventCreate, TableAvailability
from venue_booking.schemas.validation import TicketCutoffResponse
from venue_booking.services.validation_service import get_event_or_404, is_within_ticket_cutoff

logger = get_logger(__name__)
settings = get_settings()


async def create_event(db: AsyncSession, event_data: EventCreate) -> Event:
    """Create a new event with full seat and table availability."""
    if as_utc(event_data.date) <= utcnow():
        raise ValidationError("Event date must be in the future")

    total_tables = 0 if event_data.event_type == "ticket-only" else event_data.total_tables
    cutoff_days = event_data.ticket_cutoff_days
    if cutoff_days is None:
        cutoff_days = settings.DEFAULT_TICKET_CUTOFF_DAYS

    event = Event(
        title=event_data.title,
        description=event_data.description,
        date=as_utc(event_data.date),
        venue_id=event_data.venue_id,
        event_type=event_data.event_type,
        total_seats=event_data.total_seats,
        total_tables=total_tables,
        available_seats=event_data.total_seats,  # All seats available initially
        available_tables=total_tables,
        ticket_cutoff_days=cutoff_days,
    )
    db.add(event)
    await db.commit()

    logger.info(
        "event_created",
        event_id=event.id,
        title=event.title,
        seats=event.total_seats,
        tables=event.total_tables,
    )
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID, with its current counters."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None or not event.is_active:
        raise NotFoundError(f"Event {event_id} not found", event_id=event_id)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Event], int]:
    """
    List active events with pagination.
    Uses the ix_events_date index for date filtering.
    """
    query = select(Event).where(Event.is_active.is_(True))

    if upcoming_only:
        query = query.where(Event.date >= utcnow())

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.date.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total


async def list_tables_with_availability(db: AsyncSession, event_id: int) -> list[TableAvailability]:
    """Venue tables for an event, each flagged free/taken from active bookings."""
    event = await get_event_or_404(db, event_id)
    if event.is_ticket_only:
        return []

    tables = (await db.execute(
        select(VenueTable)
        .where(VenueTable.venue_id == event.venue_id, VenueTable.is_active.is_(True))
        .order_by(VenueTable.table_number.asc())
    )).scalars().all()

    taken = set((await db.execute(
        select(Booking.table_id).where(
            Booking.event_id == event_id,
            Booking.table_id.is_not(None),
            Booking.status.in_(ACTIVE_STATUSES),
        )
    )).scalars().all())

    return [
        TableAvailability(
            id=table.id,
            table_number=table.table_number,
            capacity=table.capacity,
            is_available=table.id not in taken,
        )
        for table in tables
    ]


async def check_ticket_cutoff(
    db: AsyncSession,
    event_id: int,
    now: Optional[datetime] = None,
) -> TicketCutoffResponse:
    event = await get_event_or_404(db, event_id)
    within = is_within_ticket_cutoff(event.date, event.ticket_cutoff_days, now)
    if within:
        message = "Tickets are available for purchase"
    else:
        message = (
            f"Ticket sales have closed. Tickets must be purchased at least "
            f"{event.ticket_cutoff_days} days before the event."
        )
    return TicketCutoffResponse(
        within_cutoff=within,
        event_date=event.date,
        cutoff_days=event.ticket_cutoff_days,
        message=message,
    )
