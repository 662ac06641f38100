"""
Booking writer with concurrency-safe table reservation.

CONCURRENCY STRATEGY: Re-validate, insert, then let the index decide
=====================================================================

Problem:
  Two customers submit checkout for table 5 at the same moment. Both saw
  the table free (maybe both even held it at different times). Both
  validate, both insert. Result: the table is sold twice.

Solution:
  One transaction per booking, in this order:

  1. Re-run availability validation inside the transaction. Never trust a
     hold or an earlier validate-table answer.
  2. INSERT the booking and flush immediately. The partial unique index
     uq_active_booking_per_table (event_id, table_id WHERE status is
     active) makes a concurrent second insert wait for the first
     transaction, then fail with IntegrityError -> ConflictError.
  3. Decrement the event counters with a conditional UPDATE
     (available_* >= n, version = version + 1). rowcount == 0 means the
     inventory ran out underneath us -> ConflictError. The CHECK
     constraints (available_* >= 0) are the final safety net.
  4. COMMIT. Booking row and counters land together or not at all.

  On SQLite the engine opens every transaction with BEGIN IMMEDIATE, which
  serializes writers outright; the index is still there.

Counters follow the active set:
  Counters move only when a booking enters or leaves {confirmed, reserved,
  comp}. A pending booking (payment still in flight) neither claims the
  table nor consumes inventory until it is confirmed.

Alternative approaches considered:
  - Application-level locks: useless once the API runs on more than one
    instance.
  - SELECT FOR UPDATE on the event row: correct, but serializes every
    booking for the whole event instead of per table.
"""

import time
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import (
    BookingError, ConflictError, ExpiredError, InvalidTransitionError, NotFoundError, ValidationError,
)
from venue_booking.core.logging import bind_booking_context, get_logger
from venue_booking.core.metrics import booking_latency, record_booking_attempt, record_transition
from venue_booking.core.timeutils import utcnow
from venue_booking.models.booking import ACTIVE_STATUSES, CANCELLED, CONFIRMED, PENDING, Booking
from venue_booking.models.event import Event
from venue_booking.schemas.booking import BookingCreate
from venue_booking.services.hold_service import HoldManager
from venue_booking.services.validation_service import (
    ensure_reassignable,
    ensure_table_bookable,
    ensure_transition,
    find_active_booking,
    get_event_or_404,
    get_table_or_404,
    is_within_ticket_cutoff,
    validate_booking_payload,
    validate_table_reassignment,
)

logger = get_logger(__name__)

_ATTEMPT_LABELS = {
    ConflictError: "conflict",
    NotFoundError: "not_found",
    ExpiredError: "expired",
    ValidationError: "invalid",
}


def _attempt_label(exc: BookingError) -> str:
    for cls, label in _ATTEMPT_LABELS.items():
        if isinstance(exc, cls):
            return label
    return "error"


async def _claim_inventory(db: AsyncSession, booking: Booking) -> None:
    """Take party_size seats (and one table) off the event, or raise ConflictError."""
    stmt = update(Event).where(
        Event.id == booking.event_id,
        Event.available_seats >= booking.party_size,
    )
    values = {
        "available_seats": Event.available_seats - booking.party_size,
        "version": Event.version + 1,
    }
    if booking.table_id is not None:
        stmt = stmt.where(Event.available_tables >= 1)
        values["available_tables"] = Event.available_tables - 1

    result = await db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    if result.rowcount == 0:
        logger.warning(
            "booking_failed_no_inventory",
            event_id=booking.event_id,
            requested=booking.party_size,
        )
        raise ConflictError("This event is sold out for the requested party size.")


async def _release_inventory(db: AsyncSession, booking: Booking) -> None:
    """Give seats (and the table) back, never past the event totals."""
    seats = Event.available_seats + booking.party_size
    values = {
        "available_seats": case((seats > Event.total_seats, Event.total_seats), else_=seats),
        "version": Event.version + 1,
    }
    if booking.table_id is not None:
        tables = Event.available_tables + 1
        values["available_tables"] = case((tables > Event.total_tables, Event.total_tables), else_=tables)

    await db.execute(
        update(Event)
        .where(Event.id == booking.event_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def _resolve_hold(hold_manager: Optional[HoldManager], data: BookingCreate) -> Optional[str]:
    """
    Token of a hold this booking may consume. Expired, foreign or unknown
    holds are only logged: the booking goes through full validation anyway.
    """
    if hold_manager is None or not data.hold_token:
        return None
    hold = await hold_manager.get_hold(data.hold_token)
    if hold is None:
        logger.info("hold_stale_revalidating", event_id=data.event_id, table_id=data.table_id)
        return None
    if hold.event_id != data.event_id or hold.table_id != data.table_id:
        logger.info("hold_mismatch_revalidating", event_id=data.event_id, table_id=data.table_id)
        return None
    if data.session_id and hold.session_id != data.session_id:
        logger.info("hold_foreign_session", event_id=data.event_id, table_id=data.table_id)
        return None
    return hold.token


async def create_booking(
    db: AsyncSession,
    data: BookingCreate,
    *,
    status: str = CONFIRMED,
    user_id: Optional[int] = None,
    enforce_cutoff: bool = True,
    hold_manager: Optional[HoldManager] = None,
    notes: Optional[str] = None,
    now=None,
) -> Booking:
    """
    Validate and insert a booking as one unit of work.

    Raises NotFoundError (unknown event/table), ExpiredError (ticket cutoff
    passed), ValidationError (bad party/guest/menu data) or ConflictError
    (table taken, possibly by a concurrent request that won the race).
    """
    bind_booking_context(event_id=data.event_id, table_id=data.table_id)
    start = time.perf_counter()
    try:
        booking = await _create_booking(
            db, data,
            status=status,
            user_id=user_id,
            enforce_cutoff=enforce_cutoff,
            hold_manager=hold_manager,
            notes=notes,
            now=now or utcnow(),
        )
    except BookingError as exc:
        record_booking_attempt(_attempt_label(exc))
        raise
    booking_latency.observe(time.perf_counter() - start)
    record_booking_attempt("success")
    return booking


async def _create_booking(
    db: AsyncSession,
    data: BookingCreate,
    *,
    status: str,
    user_id: Optional[int],
    enforce_cutoff: bool,
    hold_manager: Optional[HoldManager],
    notes: Optional[str],
    now,
) -> Booking:
    event_id, table_id = data.event_id, data.table_id

    if status not in ACTIVE_STATUSES and status != PENDING:
        raise ValidationError(f"Bookings cannot be created as {status}")

    if table_id is None:
        event = await get_event_or_404(db, event_id)
        if not event.is_ticket_only:
            raise ValidationError("table_id is required for this event")
        table = None
    else:
        event, table = await ensure_table_bookable(db, table_id, event_id)

    if enforce_cutoff and not is_within_ticket_cutoff(event.date, event.ticket_cutoff_days, now):
        raise ExpiredError(
            f"Ticket sales have closed. Tickets must be purchased at least "
            f"{event.ticket_cutoff_days} days before the event.",
            event_id=event_id,
        )

    validate_booking_payload(data, table)
    hold_token = await _resolve_hold(hold_manager, data)

    if table_id is not None and status in ACTIVE_STATUSES:
        if await find_active_booking(db, table_id, event_id) is not None:
            await db.rollback()
            logger.info("booking_conflict", event_id=event_id, table_id=table_id, stage="validation")
            raise ConflictError(event_id=event_id, table_id=table_id)

    booking = Booking(
        event_id=event_id,
        table_id=table_id,
        user_id=user_id,
        customer_email=str(data.customer_email),
        party_size=data.party_size,
        guest_names=list(data.guest_names),
        food_selections=[s.model_dump() for s in data.food_selections],
        wine_selections=[s.model_dump() for s in data.wine_selections],
        payment_reference=data.payment_reference,
        amount=data.amount,
        status=status,
        notes=notes,
    )
    db.add(booking)
    try:
        await db.flush()
        if status in ACTIVE_STATUSES:
            await _claim_inventory(db, booking)
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.info(
            "booking_conflict",
            event_id=event_id,
            table_id=table_id,
            stage="insert",
            error=str(e.orig),
        )
        raise ConflictError(event_id=event_id, table_id=table_id)
    except ConflictError:
        await db.rollback()
        raise

    if hold_token and hold_manager is not None:
        await hold_manager.release_hold(hold_token)

    logger.info(
        "booking_created",
        booking_id=booking.id,
        event_id=event_id,
        table_id=table_id,
        party_size=booking.party_size,
        status=status,
    )
    return booking


async def transition_status(db: AsyncSession, booking: Booking, target: str) -> str:
    """
    Move a booking along the status machine, pairing the change with the
    matching counter update. Flushes but does not commit: the caller owns
    the unit of work (and any audit rows that belong with it).

    Returns the previous status. Raises InvalidTransitionError for a move
    the machine forbids, ConflictError when confirming a booking whose
    table or inventory is gone; the booking is left untouched then.
    """
    previous = booking.status
    ensure_transition(previous, target)

    entering = target in ACTIVE_STATUSES and previous not in ACTIVE_STATUSES
    leaving = previous in ACTIVE_STATUSES and target not in ACTIVE_STATUSES

    if entering:
        if booking.table_id is not None:
            taken = await find_active_booking(db, booking.table_id, booking.event_id, booking.id)
            if taken is not None:
                raise ConflictError(booking_id=booking.id, table_id=booking.table_id)
        try:
            async with db.begin_nested():
                booking.status = target
                await db.flush()
                await _claim_inventory(db, booking)
        except (IntegrityError, ConflictError) as exc:
            await db.refresh(booking)
            raise ConflictError(booking_id=booking.id, table_id=booking.table_id) from exc
    else:
        booking.status = target
        await db.flush()
        if leaving:
            await _release_inventory(db, booking)

    record_transition(previous, target)
    logger.info("booking_status_changed", booking_id=booking.id, previous=previous, status=target)
    return previous


async def get_booking(db: AsyncSession, booking_id: int, for_update: bool = False) -> Booking:
    query = select(Booking).where(Booking.id == booking_id)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    booking = result.scalar_one_or_none()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
    return booking


async def find_booking_by_reference(
    db: AsyncSession,
    payment_reference: str,
    for_update: bool = False,
) -> Optional[Booking]:
    query = select(Booking).where(Booking.payment_reference == payment_reference)
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def list_event_bookings(db: AsyncSession, event_id: int) -> list[Booking]:
    await get_event_or_404(db, event_id, require_active=False)
    result = await db.execute(
        select(Booking).where(Booking.event_id == event_id).order_by(Booking.created_at.asc())
    )
    return list(result.scalars().all())


async def reassign_table(db: AsyncSession, booking_id: int, new_table_id: int) -> Booking:
    """Backoffice table change; the target must pass the same availability rule."""
    booking = await get_booking(db, booking_id, for_update=True)
    ensure_reassignable(booking)
    if booking.table_id == new_table_id:
        return booking
    if booking.table_id is None:
        raise ValidationError("Ticket-only bookings have no table to reassign")

    if not await validate_table_reassignment(db, new_table_id, booking.event_id, booking.id):
        raise ConflictError(
            "Cannot reassign to an already booked table",
            booking_id=booking_id,
            table_id=new_table_id,
        )
    table = await get_table_or_404(db, new_table_id)
    if booking.party_size > table.capacity:
        raise ValidationError(f"Table {table.table_number} seats at most {table.capacity} guests")

    previous_table = booking.table_id
    booking.table_id = new_table_id
    try:
        await db.flush()
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(
            "Cannot reassign to an already booked table",
            booking_id=booking_id,
            table_id=new_table_id,
        )

    logger.info(
        "booking_reassigned",
        booking_id=booking_id,
        from_table=previous_table,
        to_table=new_table_id,
    )
    return booking


async def cancel_booking(db: AsyncSession, booking_id: int) -> Booking:
    """Cancel a pending/reserved/comp booking and release what it held."""
    booking = await get_booking(db, booking_id, for_update=True)
    await transition_status(db, booking, CANCELLED)
    await db.commit()
    return booking


async def check_in_booking(db: AsyncSession, booking_id: int, now=None) -> Booking:
    """Door check-in. Idempotent: a second scan keeps the first timestamp."""
    booking = await get_booking(db, booking_id, for_update=True)
    if booking.status not in ACTIVE_STATUSES:
        raise InvalidTransitionError(f"Booking {booking_id} is {booking.status} and cannot check in")
    if booking.checked_in_at is None:
        booking.checked_in_at = now or utcnow()
        await db.commit()
        logger.info("booking_checked_in", booking_id=booking_id, event_id=booking.event_id)
    return booking
