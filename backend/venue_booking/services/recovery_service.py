"""
Recovery path: rebuild a booking for a payment that succeeded at the
provider but never produced a local booking (browser closed before the
redirect, webhook landed on the unmatched queue, ...).

Recovery is keyed by the payment reference and is idempotent. Running it
twice, or racing two staff members on the same payment, yields one booking:
the bookings.payment_reference unique constraint rejects the second insert
and the loser returns the winner's row.

A payment can also belong to a booking that is still pending because its
table was taken before the payment landed. Recovery confirms that booking
on the table named in the details. Queue entries are only resolved once
the booking is active; a cancelled or refunded booking is a conflict.
"""

from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import ConflictError, ValidationError
from venue_booking.core.logging import bind_booking_context, get_logger
from venue_booking.core.metrics import recovered_bookings
from venue_booking.core.timeutils import utcnow
from venue_booking.models.booking import ACTIVE_STATUSES, CONFIRMED, PENDING, Booking
from venue_booking.models.payment import UnmatchedPayment
from venue_booking.schemas.booking import BookingCreate
from venue_booking.services.booking_service import create_booking, find_booking_by_reference, transition_status
from venue_booking.services.payment_provider import PaymentAdapter
from venue_booking.services.validation_service import ensure_table_bookable

logger = get_logger(__name__)


async def _resolve_unmatched(db: AsyncSession, payment_reference: str, booking_id: int) -> int:
    result = await db.execute(
        update(UnmatchedPayment)
        .where(
            UnmatchedPayment.payment_reference == payment_reference,
            UnmatchedPayment.resolved_at.is_(None),
        )
        .values(resolved_booking_id=booking_id, resolved_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def _confirm_pending(db: AsyncSession, booking: Booking, details: BookingCreate) -> None:
    """
    Confirm a pending booking whose payment landed after its table was
    taken, moving it to the table in `details` first. Raises ConflictError
    when that table is occupied too; nothing is changed then.
    """
    if details.event_id != booking.event_id:
        raise ValidationError(
            f"Booking {booking.id} belongs to event {booking.event_id}",
            booking_id=booking.id,
        )
    table_id = details.table_id if details.table_id is not None else booking.table_id
    if table_id is not None:
        _, table = await ensure_table_bookable(db, table_id, booking.event_id, require_active_event=False)
        if booking.party_size > table.capacity:
            raise ValidationError(f"Table {table.table_number} seats at most {table.capacity} guests")

    previous_table = booking.table_id
    booking.table_id = table_id
    try:
        await transition_status(db, booking, CONFIRMED)
    except ConflictError:
        await db.rollback()
        raise
    booking.notes = "Recovered from payment " + booking.payment_reference
    await db.commit()
    logger.info(
        "recovery_confirmed_pending",
        booking_id=booking.id,
        from_table=previous_table,
        to_table=table_id,
    )


async def _existing(
    db: AsyncSession,
    payment_reference: str,
    booking: Booking,
    details: BookingCreate,
) -> tuple[Booking, bool]:
    if booking.status == PENDING:
        await _confirm_pending(db, booking, details)
        result = "confirmed_pending"
    elif booking.status in ACTIVE_STATUSES:
        result = "existing"
    else:
        await db.rollback()
        raise ConflictError(
            f"Booking {booking.id} for payment {payment_reference} is {booking.status}",
            booking_id=booking.id,
        )

    await _resolve_unmatched(db, payment_reference, booking.id)
    recovered_bookings.labels(result=result).inc()
    logger.info(
        "recovery_existing_booking",
        booking_id=booking.id,
        payment_reference=payment_reference,
        status=booking.status,
    )
    return booking, False


async def recover_booking(
    db: AsyncSession,
    payment_reference: str,
    details: BookingCreate,
    *,
    provider: Optional[PaymentAdapter] = None,
    user_id: Optional[int] = None,
) -> tuple[Booking, bool]:
    """
    Return (booking, created). `details` describes the booking the customer
    paid for; its own payment_reference, if any, is replaced by the one
    being recovered.

    With a provider, the payment must have settled ("succeeded") first.
    The ticket cutoff is not enforced: the money was taken while the
    window was open.
    """
    bind_booking_context(payment_reference=payment_reference)

    existing = await find_booking_by_reference(db, payment_reference)
    if existing is not None:
        return await _existing(db, payment_reference, existing, details)
    await db.rollback()

    if provider is not None:
        payment_status = await provider.retrieve_payment_status(payment_reference)
        if payment_status != "succeeded":
            raise ValidationError(
                f"Payment {payment_reference} is {payment_status}, nothing to recover",
                payment_reference=payment_reference,
            )

    data = details.model_copy(update={"payment_reference": payment_reference, "hold_token": None})
    try:
        booking = await create_booking(
            db, data,
            status=CONFIRMED,
            user_id=user_id,
            enforce_cutoff=False,
            notes="Recovered from payment " + payment_reference,
        )
    except ConflictError:
        # either the table is gone or a concurrent recovery won
        existing = await find_booking_by_reference(db, payment_reference)
        if existing is None:
            raise
        return await _existing(db, payment_reference, existing, details)

    resolved = await _resolve_unmatched(db, payment_reference, booking.id)
    recovered_bookings.labels(result="created").inc()
    logger.info(
        "booking_recovered",
        booking_id=booking.id,
        payment_reference=payment_reference,
        unmatched_resolved=resolved,
    )
    return booking, True
