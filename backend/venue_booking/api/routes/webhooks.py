"""
Payment provider webhook receiver.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import UnmatchedPaymentError
from venue_booking.db.session import get_db
from venue_booking.schemas.payment import WebhookAck
from venue_booking.services.cache_service import invalidate_event_cache
from venue_booking.services.notification_service import Notifier
from venue_booking.services.payment_provider import PaymentAdapter
from venue_booking.services.payment_service import apply_payment_event
from venue_booking.services.strategy_factory import get_notifier, get_payment_adapter

router = APIRouter(prefix="/payments", tags=["Payments"])

COUNTER_OUTCOMES = frozenset({"confirmed", "refunded", "cancelled"})


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    provider: PaymentAdapter = Depends(get_payment_adapter),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Verify, parse and apply one provider event. Replays answer 200 with
    outcome "duplicate"; an event without a local booking is stored for
    recovery and answered with 202.
    """
    payload = await request.body()
    raw = provider.verify_webhook(payload, request.headers)
    event = provider.parse_event(raw)

    result = await apply_payment_event(db, event, notifier)
    if result.outcome in COUNTER_OUTCOMES:
        await invalidate_event_cache()
    if result.outcome == "unmatched":
        raise UnmatchedPaymentError(
            payment_reference=event.payment_reference,
            provider_event_id=event.id,
        )
    return WebhookAck(event_id=event.id, type=event.type, outcome=result.outcome)
