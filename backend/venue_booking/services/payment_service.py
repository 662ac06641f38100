"""
Payment reconciliation: align local bookings with the provider's view.

IDEMPOTENCY
===========

Providers redeliver webhooks and deliver them out of order. Each event id
is written to processed_webhook_events in the same transaction as the
status change it causes:

  - replay after commit: the row is already there -> "duplicate", no-op
  - concurrent replay: the second insert hits the primary key -> rolled
    back -> "duplicate"
  - crash before commit: neither the marker nor the change exists, the
    provider's retry applies it cleanly

ORDERING
========

The outcome depends only on the booking's persisted status, never on which
event was "supposed" to come first. A late payment_intent.succeeded for a
booking that is already refunded is skipped; refunded and cancelled are
terminal.

Unmatched events (no local booking for the payment reference) are written
to unmatched_payments for the recovery path, never dropped.

Notifications go out after commit and cannot undo anything.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import ConflictError, InvalidTransitionError, ValidationError
from venue_booking.core.logging import bind_booking_context, get_logger
from venue_booking.core.metrics import record_webhook, unmatched_payments
from venue_booking.models.booking import (
    CANCELLED, CONFIRMED, PENDING, REFUNDED, RESERVED, Booking,
)
from venue_booking.models.payment import ProcessedWebhookEvent, ReconciliationRecord, UnmatchedPayment
from venue_booking.schemas.payment import PaymentEvent, ReconciliationOutcome
from venue_booking.services.booking_service import find_booking_by_reference, get_booking, transition_status
from venue_booking.services.notification_service import Notifier, notify_safely
from venue_booking.services.payment_provider import PaymentAdapter

logger = get_logger(__name__)

CONFIRM_EVENT_TYPES = frozenset({
    "payment_intent.succeeded",
    "checkout.session.completed",
    "charge.succeeded",
})
REFUND_EVENT_TYPES = frozenset({
    "charge.refunded",
    "payment_intent.refunded",
    "charge.dispute.created",
})
FAILURE_EVENT_TYPES = frozenset({
    "payment_intent.payment_failed",
    "payment_intent.canceled",
})

CONFIRMABLE = frozenset({PENDING, RESERVED})


def classify(event_type: str) -> Optional[str]:
    if event_type in CONFIRM_EVENT_TYPES:
        return "confirm"
    if event_type in REFUND_EVENT_TYPES:
        return "refund"
    if event_type in FAILURE_EVENT_TYPES:
        return "failure"
    return None


def _audit(
    db: AsyncSession,
    event: PaymentEvent,
    outcome: str,
    booking: Optional[Booking] = None,
    previous_status: Optional[str] = None,
) -> None:
    db.add(ReconciliationRecord(
        provider_event_id=event.id,
        event_type=event.type,
        payment_reference=event.payment_reference,
        booking_id=booking.id if booking is not None else None,
        previous_status=previous_status,
        new_status=booking.status if booking is not None else None,
        amount=event.amount,
        outcome=outcome,
    ))


def _queue_unmatched(db: AsyncSession, event: PaymentEvent, reason: str) -> None:
    db.add(UnmatchedPayment(
        provider_event_id=event.id,
        event_type=event.type,
        payment_reference=event.payment_reference,
        amount=event.amount,
        reason=reason,
        payload=event.payload,
    ))
    unmatched_payments.labels(reason=reason).inc()
    logger.warning(
        "payment_unmatched",
        provider_event_id=event.id,
        event_type=event.type,
        payment_reference=event.payment_reference,
        reason=reason,
    )


async def _apply_confirm(db: AsyncSession, event: PaymentEvent, booking: Booking) -> str:
    if booking.status not in CONFIRMABLE:
        # already confirmed, comp, or terminal: a stale confirm never resurrects
        _audit(db, event, "skipped", booking, booking.status)
        return "skipped"
    previous = booking.status
    try:
        await transition_status(db, booking, CONFIRMED)
    except ConflictError:
        _queue_unmatched(db, event, "table_conflict")
        _audit(db, event, "conflict", booking, previous)
        return "conflict"
    if booking.amount is None and event.amount is not None:
        booking.amount = event.amount
    _audit(db, event, "confirmed", booking, previous)
    return "confirmed"


async def _apply_refund(db: AsyncSession, event: PaymentEvent, booking: Booking) -> str:
    if booking.status != CONFIRMED:
        _audit(db, event, "skipped", booking, booking.status)
        return "skipped"
    await transition_status(db, booking, REFUNDED)
    _audit(db, event, "refunded", booking, CONFIRMED)
    return "refunded"


async def _apply_failure(db: AsyncSession, event: PaymentEvent, booking: Booking) -> str:
    if booking.status != PENDING:
        _audit(db, event, "skipped", booking, booking.status)
        return "skipped"
    await transition_status(db, booking, CANCELLED)
    _audit(db, event, "cancelled", booking, PENDING)
    return "cancelled"


_HANDLERS = {
    "confirm": _apply_confirm,
    "refund": _apply_refund,
    "failure": _apply_failure,
}


async def _already_processed(db: AsyncSession, event_id: str) -> bool:
    result = await db.execute(
        select(ProcessedWebhookEvent.event_id).where(ProcessedWebhookEvent.event_id == event_id)
    )
    return result.scalar_one_or_none() is not None


def _outcome(event: PaymentEvent, outcome: str, booking: Optional[Booking] = None) -> ReconciliationOutcome:
    record_webhook(event.type, outcome)
    return ReconciliationOutcome(
        event_id=event.id,
        event_type=event.type,
        outcome=outcome,
        booking_id=booking.id if booking is not None else None,
        status=booking.status if booking is not None else None,
    )


async def apply_payment_event(
    db: AsyncSession,
    event: PaymentEvent,
    notifier: Optional[Notifier] = None,
) -> ReconciliationOutcome:
    """Apply one provider event exactly once. See module docstring."""
    bind_booking_context(provider_event_id=event.id, payment_reference=event.payment_reference)

    if await _already_processed(db, event.id):
        logger.info("webhook_duplicate", provider_event_id=event.id, event_type=event.type)
        return _outcome(event, "duplicate")

    db.add(ProcessedWebhookEvent(event_id=event.id, event_type=event.type))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        logger.info("webhook_duplicate", provider_event_id=event.id, event_type=event.type, stage="insert")
        return _outcome(event, "duplicate")

    kind = classify(event.type)
    booking = None
    if kind is None or not event.payment_reference:
        outcome = "ignored"
    else:
        booking = await find_booking_by_reference(db, event.payment_reference, for_update=True)
        if booking is None:
            _queue_unmatched(db, event, "no_booking")
            _audit(db, event, "unmatched")
            outcome = "unmatched"
        else:
            outcome = await _HANDLERS[kind](db, event, booking)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("webhook_duplicate", provider_event_id=event.id, event_type=event.type, stage="commit")
        return _outcome(event, "duplicate")

    logger.info(
        "webhook_processed",
        provider_event_id=event.id,
        event_type=event.type,
        outcome=outcome,
        booking_id=booking.id if booking is not None else None,
    )

    if notifier is not None and booking is not None:
        if outcome == "confirmed":
            await notify_safely("booking_confirmation", notifier.send_booking_confirmation, booking)
        elif outcome == "refunded":
            await notify_safely("refund_notification", notifier.send_refund_notification, booking, event.amount)

    return _outcome(event, outcome, booking)


async def refund_booking(
    db: AsyncSession,
    booking_id: int,
    provider: PaymentAdapter,
    notifier: Optional[Notifier] = None,
    amount: Optional[int] = None,
    reason: str = "requested_by_customer",
) -> Booking:
    """
    Backoffice refund. The provider call happens outside any database
    transaction; the local transition is applied afterwards against the
    status as it is then (the provider's own charge.refunded webhook may
    have beaten us to it, which is fine).
    """
    booking = await get_booking(db, booking_id)
    if booking.status != CONFIRMED:
        raise InvalidTransitionError(f"Booking {booking_id} is {booking.status} and cannot be refunded")
    if not booking.payment_reference:
        raise ValidationError(f"Booking {booking_id} has no payment to refund")
    payment_reference = booking.payment_reference
    refund_amount = amount if amount is not None else booking.amount
    await db.rollback()

    result = await provider.create_refund(payment_reference, refund_amount, reason)
    logger.info(
        "refund_created",
        booking_id=booking_id,
        refund_id=result.refund_id,
        refund_status=result.status,
        amount=refund_amount,
    )

    booking = await get_booking(db, booking_id, for_update=True)
    audit_event = PaymentEvent(
        id=result.refund_id,
        type="admin.refund",
        payment_reference=payment_reference,
        amount=refund_amount,
    )
    refunded_here = booking.status == CONFIRMED
    if refunded_here:
        await transition_status(db, booking, REFUNDED)
        _audit(db, audit_event, "refunded", booking, CONFIRMED)
    else:
        _audit(db, audit_event, "skipped", booking, booking.status)
    await db.commit()

    if notifier is not None and refunded_here:
        await notify_safely("refund_notification", notifier.send_refund_notification, booking, refund_amount)
    return booking


async def confirm_booking_paid(
    db: AsyncSession,
    booking_id: int,
    amount: int,
    payment_reference: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> Booking:
    """
    Staff confirmation of a payment taken outside the provider (cash, card
    terminal, bank transfer). Only reserved and pending bookings qualify.
    A booking without a payment reference gets an offline_ one so the
    payment can be traced.
    """
    if amount <= 0:
        raise ValidationError("Valid payment amount required")

    if payment_reference:
        other = await find_booking_by_reference(db, payment_reference)
        if other is not None and other.id != booking_id:
            raise ConflictError(
                f"Payment {payment_reference} already belongs to booking {other.id}",
                booking_id=booking_id,
            )

    booking = await get_booking(db, booking_id, for_update=True)
    previous = booking.status
    reference = payment_reference or booking.payment_reference or f"offline_{uuid.uuid4().hex[:16]}"
    try:
        booking.payment_reference = reference
        booking.amount = amount
        await transition_status(db, booking, CONFIRMED)
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Payment {reference} already belongs to another booking", booking_id=booking_id)
    except ConflictError:
        await db.rollback()
        raise

    _audit(
        db,
        PaymentEvent(id=reference, type="admin.offline_payment", payment_reference=reference, amount=amount),
        "confirmed",
        booking,
        previous,
    )
    await db.commit()
    logger.info(
        "booking_marked_paid",
        booking_id=booking_id,
        previous=previous,
        payment_reference=reference,
        amount=amount,
    )

    if notifier is not None:
        await notify_safely("booking_confirmation", notifier.send_booking_confirmation, booking)
    return booking


async def list_unmatched_payments(db: AsyncSession, include_resolved: bool = False) -> list[UnmatchedPayment]:
    query = select(UnmatchedPayment).order_by(UnmatchedPayment.created_at.desc())
    if not include_resolved:
        query = query.where(UnmatchedPayment.resolved_at.is_(None))
    result = await db.execute(query)
    return list(result.scalars().all())
