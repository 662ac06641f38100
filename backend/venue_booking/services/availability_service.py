"""
Repair tool: recompute an event's seat/table counters from its bookings.

The counters are maintained incrementally by the booking writer; this is
the admin escape hatch for when they drifted anyway (manual SQL, a restore).
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import NotFoundError
from venue_booking.core.logging import get_logger
from venue_booking.models.booking import ACTIVE_STATUSES, Booking
from venue_booking.models.event import Event

logger = get_logger(__name__)


async def sync_event_availability(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise NotFoundError(f"Event {event_id} not found", event_id=event_id)

    totals = await db.execute(
        select(
            func.coalesce(func.sum(Booking.party_size), 0),
            func.count(func.distinct(Booking.table_id)),
        ).where(
            Booking.event_id == event_id,
            Booking.status.in_(ACTIVE_STATUSES),
        )
    )
    booked_seats, booked_tables = totals.one()

    available_seats = max(0, event.total_seats - booked_seats)
    available_tables = max(0, event.total_tables - booked_tables)
    drift = {
        "seats": event.available_seats - available_seats,
        "tables": event.available_tables - available_tables,
    }

    if drift["seats"] or drift["tables"]:
        event.available_seats = available_seats
        event.available_tables = available_tables
        event.version = event.version + 1
        await db.commit()
        logger.warning(
            "availability_resynced",
            event_id=event_id,
            booked_seats=booked_seats,
            booked_tables=booked_tables,
            seat_drift=drift["seats"],
            table_drift=drift["tables"],
        )
    else:
        await db.commit()
        logger.info("availability_in_sync", event_id=event_id)
    return event
