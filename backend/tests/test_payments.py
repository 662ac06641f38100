"""
Tests for payment reconciliation: webhook idempotency, ordering, unmatched
payments and backoffice refunds.
"""

import asyncio
import json

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient
from sqlalchemy import select

from venue_booking.core.exceptions import ConflictError, InvalidTransitionError, ValidationError
from venue_booking.models.booking import PENDING, RESERVED, Booking
from venue_booking.models.event import Event
from venue_booking.models.payment import ReconciliationRecord, UnmatchedPayment
from venue_booking.services.booking_service import create_booking
from venue_booking.services.notification_service import HttpNotifier
from venue_booking.services.payment_provider import parse_provider_event
from venue_booking.services.payment_service import (
    apply_payment_event, confirm_booking_paid, list_unmatched_payments, refund_booking,
)


def refund_event(event_id="evt_refund_1", reference="pi_confirmed", amount=12000) -> dict:
    return {
        "id": event_id,
        "type": "charge.refunded",
        "data": {"object": {"id": "ch_1", "payment_intent": reference, "amount_refunded": amount}},
    }


def succeeded_event(event_id="evt_paid_1", reference="pi_pending", amount=12000) -> dict:
    return {
        "id": event_id,
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": reference, "amount_received": amount}},
    }


def failed_event(event_id="evt_failed_1", reference="pi_pending") -> dict:
    return {
        "id": event_id,
        "type": "payment_intent.payment_failed",
        "data": {"object": {"id": reference, "amount": 12000}},
    }


@pytest.fixture
def apply(session_factory):
    """Apply one raw provider event in its own session, like one webhook request."""
    async def _apply(raw: dict, notifier=None):
        async with session_factory() as session:
            return await apply_payment_event(session, parse_provider_event(raw), notifier)
    return _apply


@pytest_asyncio.fixture
async def pending_booking(session_factory, test_event, make_booking) -> Booking:
    async with session_factory() as session:
        return await create_booking(session, make_booking(payment_reference="pi_pending"), status=PENDING)


async def records(session_factory, model):
    async with session_factory() as session:
        result = await session.execute(select(model).order_by(model.id))
        rows = list(result.scalars().all())
        await session.commit()
        return rows


def test_parse_provider_event_shapes():
    event = parse_provider_event(refund_event())
    assert event.payment_reference == "pi_confirmed"
    assert event.amount == 12000

    event = parse_provider_event({
        "id": "evt_cs",
        "type": "checkout.session.completed",
        "data": {"object": {"id": "cs_1", "payment_intent": "pi_9", "amount_total": 5000}},
    })
    assert event.payment_reference == "pi_9"
    assert event.amount == 5000


@pytest.mark.asyncio
async def test_refund_webhook_returns_seats(apply, fetch, notifier, confirmed_booking):
    """Confirmed booking, party of 2, provider sends charge.refunded."""
    result = await apply(refund_event(), notifier)

    assert result.outcome == "refunded"
    assert result.status == "refunded"
    assert (await fetch(Booking, confirmed_booking.id)).status == "refunded"

    event = await fetch(Event, 35)
    assert event.available_seats == 40
    assert event.available_tables == 3
    assert notifier.sent == [("refund_notification", confirmed_booking.id, 12000)]


@pytest.mark.asyncio
async def test_replayed_webhook_is_a_no_op(apply, fetch, session_factory, confirmed_booking):
    first = await apply(refund_event())
    second = await apply(refund_event())

    assert first.outcome == "refunded"
    assert second.outcome == "duplicate"
    assert (await fetch(Event, 35)).available_seats == 40

    audit = await records(session_factory, ReconciliationRecord)
    assert [r.outcome for r in audit] == ["refunded"]


@pytest.mark.asyncio
async def test_concurrent_replays_apply_once(apply, fetch, confirmed_booking):
    results = await asyncio.gather(apply(refund_event()), apply(refund_event()))

    assert sorted(r.outcome for r in results) == ["duplicate", "refunded"]
    assert (await fetch(Event, 35)).available_seats == 40


@pytest.mark.asyncio
async def test_stale_confirm_after_refund_is_skipped(apply, fetch, confirmed_booking):
    await apply(refund_event())
    late = await apply(succeeded_event(event_id="evt_paid_late", reference="pi_confirmed"))

    assert late.outcome == "skipped"
    assert (await fetch(Booking, confirmed_booking.id)).status == "refunded"
    assert (await fetch(Event, 35)).available_seats == 40


@pytest.mark.asyncio
async def test_payment_confirms_pending_booking(apply, fetch, notifier, pending_booking):
    result = await apply(succeeded_event(), notifier)

    assert result.outcome == "confirmed"
    assert (await fetch(Booking, pending_booking.id)).status == "confirmed"
    event = await fetch(Event, 35)
    assert event.available_seats == 38
    assert event.available_tables == 2
    assert notifier.sent == [("booking_confirmation", pending_booking.id)]


@pytest.mark.asyncio
async def test_payment_for_pending_booking_on_taken_table(apply, fetch, session_factory, confirmed_booking, make_booking):
    async with session_factory() as session:
        pending = await create_booking(
            session,
            make_booking(payment_reference="pi_pending", customer_email="slow@example.com"),
            status=PENDING,
        )

    result = await apply(succeeded_event())

    assert result.outcome == "conflict"
    assert (await fetch(Booking, pending.id)).status == "pending"
    assert (await fetch(Event, 35)).available_tables == 2

    queued = await records(session_factory, UnmatchedPayment)
    assert [(u.payment_reference, u.reason) for u in queued] == [("pi_pending", "table_conflict")]


@pytest.mark.asyncio
async def test_failed_payment_cancels_pending_booking(apply, fetch, pending_booking):
    result = await apply(failed_event())

    assert result.outcome == "cancelled"
    assert (await fetch(Booking, pending_booking.id)).status == "cancelled"
    assert (await fetch(Event, 35)).available_seats == 40


@pytest.mark.asyncio
async def test_failed_payment_does_not_touch_confirmed_booking(apply, fetch, confirmed_booking):
    result = await apply(failed_event(reference="pi_confirmed"))

    assert result.outcome == "skipped"
    assert (await fetch(Booking, confirmed_booking.id)).status == "confirmed"


@pytest.mark.asyncio
async def test_unmatched_payment_is_queued(apply, session_factory, test_event):
    result = await apply(succeeded_event(reference="pi_ghost"))
    assert result.outcome == "unmatched"
    assert result.booking_id is None

    async with session_factory() as session:
        queued = await list_unmatched_payments(session)
        await session.commit()
    assert len(queued) == 1
    assert queued[0].payment_reference == "pi_ghost"
    assert queued[0].reason == "no_booking"
    assert queued[0].amount == 12000


@pytest.mark.asyncio
async def test_unknown_event_type_is_ignored(apply, confirmed_booking):
    result = await apply({"id": "evt_misc", "type": "customer.created", "data": {"object": {"id": "cus_1"}}})
    assert result.outcome == "ignored"


@pytest.mark.asyncio
async def test_failed_notification_keeps_refund(apply, fetch, confirmed_booking):
    notifier = HttpNotifier(
        "http://notify.test/hooks",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )

    result = await apply(refund_event(), notifier)

    assert result.outcome == "refunded"
    assert (await fetch(Booking, confirmed_booking.id)).status == "refunded"


@pytest.mark.asyncio
async def test_notifier_posts_booking_payload():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(202)

    notifier = HttpNotifier("http://notify.test/hooks", transport=httpx.MockTransport(handler))
    booking = Booking(
        id=9, event_id=35, table_id=5, customer_email="guest@example.com",
        party_size=2, guest_names=["Ada"], status="confirmed",
    )
    await notifier.send_refund_notification(booking, 12000)

    assert len(seen) == 1
    payload = json.loads(seen[0].content)
    assert payload["kind"] == "refund_notification"
    assert payload["booking_id"] == 9
    assert payload["refund_amount"] == 12000


@pytest.mark.asyncio
async def test_backoffice_refund(session_factory, fetch, payment_adapter, notifier, confirmed_booking):
    async with session_factory() as session:
        booking = await refund_booking(session, confirmed_booking.id, payment_adapter, notifier=notifier)

    assert booking.status == "refunded"
    assert (await fetch(Event, 35)).available_seats == 40
    assert notifier.sent == [("refund_notification", confirmed_booking.id, 12000)]

    audit = await records(session_factory, ReconciliationRecord)
    assert len(audit) == 1
    assert audit[0].event_type == "admin.refund"
    assert audit[0].outcome == "refunded"
    assert audit[0].provider_event_id.startswith("re_mock_")


@pytest.mark.asyncio
async def test_backoffice_refund_requires_confirmed_booking(session_factory, payment_adapter, pending_booking):
    async with session_factory() as session:
        with pytest.raises(InvalidTransitionError):
            await refund_booking(session, pending_booking.id, payment_adapter)


@pytest.mark.asyncio
async def test_mark_reserved_booking_paid_offline(session_factory, fetch, notifier, test_event, make_booking):
    async with session_factory() as session:
        reserved = await create_booking(session, make_booking(), status=RESERVED)

    async with session_factory() as session:
        booking = await confirm_booking_paid(session, reserved.id, 26000, notifier=notifier)
    assert booking.status == "confirmed"
    assert booking.amount == 26000
    assert booking.payment_reference.startswith("offline_")
    assert notifier.sent == [("booking_confirmation", reserved.id)]

    # a reserved booking already holds its table and seats
    event = await fetch(Event, 35)
    assert event.available_seats == 38
    assert event.available_tables == 2

    audit = await records(session_factory, ReconciliationRecord)
    assert [(r.event_type, r.outcome, r.previous_status, r.new_status) for r in audit] == [
        ("admin.offline_payment", "confirmed", "reserved", "confirmed"),
    ]

    async with session_factory() as session:
        with pytest.raises(InvalidTransitionError):
            await confirm_booking_paid(session, reserved.id, 26000)


@pytest.mark.asyncio
async def test_mark_paid_keeps_given_reference(session_factory, fetch, test_event, make_booking):
    async with session_factory() as session:
        reserved = await create_booking(session, make_booking(), status=RESERVED)

    async with session_factory() as session:
        with pytest.raises(ValidationError):
            await confirm_booking_paid(session, reserved.id, 0)

    async with session_factory() as session:
        await confirm_booking_paid(session, reserved.id, 12000, payment_reference="bank_4711")
    assert (await fetch(Booking, reserved.id)).payment_reference == "bank_4711"


@pytest.mark.asyncio
async def test_mark_paid_pending_booking_on_taken_table(session_factory, fetch, confirmed_booking, pending_booking):
    async with session_factory() as session:
        with pytest.raises(ConflictError):
            await confirm_booking_paid(session, pending_booking.id, 12000)

    stored = await fetch(Booking, pending_booking.id)
    assert stored.status == "pending"
    assert stored.payment_reference == "pi_pending"

# HTTP surface

@pytest.mark.asyncio
async def test_signed_webhook(client: AsyncClient, signed_webhook, confirmed_booking):
    body, headers = signed_webhook(refund_event())

    response = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
    assert response.status_code == 200
    assert response.json() == {
        "received": True,
        "event_id": "evt_refund_1",
        "type": "charge.refunded",
        "outcome": "refunded",
    }

    response = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
    assert response.status_code == 200
    assert response.json()["outcome"] == "duplicate"


@pytest.mark.asyncio
async def test_unsigned_webhook_is_rejected(client: AsyncClient, fetch, confirmed_booking):
    response = await client.post("/api/v1/payments/webhook", json=refund_event())
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"

    response = await client.post(
        "/api/v1/payments/webhook",
        json=refund_event(),
        headers={"x-mockpay-signature": "bm90LWEtc2lnbmF0dXJl"},
    )
    assert response.status_code == 400
    assert (await fetch(Booking, confirmed_booking.id)).status == "confirmed"


@pytest.mark.asyncio
async def test_unmatched_webhook_returns_202(client: AsyncClient, signed_webhook, staff_headers, test_event):
    body, headers = signed_webhook(succeeded_event(reference="pi_ghost"))

    response = await client.post("/api/v1/payments/webhook", content=body, headers=headers)
    assert response.status_code == 202
    assert response.json()["code"] == "UNMATCHED"

    response = await client.get("/api/v1/admin/unmatched-payments", headers=staff_headers)
    assert response.status_code == 200
    assert [p["payment_reference"] for p in response.json()] == ["pi_ghost"]


@pytest.mark.asyncio
async def test_admin_refund_endpoint(client: AsyncClient, staff_headers, customer_headers, notifier, confirmed_booking):
    url = f"/api/v1/admin/bookings/{confirmed_booking.id}/refund"

    response = await client.post(url, json={}, headers=customer_headers)
    assert response.status_code == 403

    response = await client.post(url, json={}, headers=staff_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "refunded"
    assert notifier.sent == [("refund_notification", confirmed_booking.id, 12000)]

    response = await client.post(url, json={}, headers=staff_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_admin_mark_paid_endpoint(
    client: AsyncClient, staff_headers, customer_headers, notifier, booking_payload, test_event
):
    response = await client.post(
        "/api/v1/admin/bookings", json={**booking_payload(), "status": "reserved"}, headers=staff_headers
    )
    booking_id = response.json()["id"]
    url = f"/api/v1/admin/bookings/{booking_id}/mark-paid"

    assert (await client.post(url, json={"amount": 26000})).status_code == 401
    response = await client.post(url, json={"amount": 26000}, headers=customer_headers)
    assert response.status_code == 403

    response = await client.post(url, json={"amount": 0}, headers=staff_headers)
    assert response.status_code == 400

    response = await client.post(url, json={"amount": 26000}, headers=staff_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "confirmed"
    assert data["amount"] == 26000
    assert data["payment_reference"].startswith("offline_")
    assert ("booking_confirmation", booking_id) in notifier.sent

    response = await client.post(url, json={"amount": 26000}, headers=staff_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"

    response = await client.post("/api/v1/admin/bookings/999/mark-paid", json={"amount": 100}, headers=staff_headers)
    assert response.status_code == 404
