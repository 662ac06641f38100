"""
Tests for the booking validator: availability, reassignment, ticket cutoff
and the booking status machine.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from venue_booking.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from venue_booking.models.booking import CANCELLED, PENDING, RESERVED
from venue_booking.services.booking_service import cancel_booking, create_booking
from venue_booking.services.validation_service import (
    ensure_transition,
    is_within_ticket_cutoff,
    validate_booking_payload,
    validate_table_availability,
    validate_table_reassignment,
)

EVENT_DATE = datetime(2026, 12, 31, 20, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_free_table_is_available(db_session, test_event):
    assert await validate_table_availability(db_session, 5, 35) is True


@pytest.mark.asyncio
async def test_booked_table_is_unavailable(db_session, confirmed_booking):
    assert await validate_table_availability(db_session, 5, 35) is False
    assert await validate_table_availability(db_session, 6, 35) is True


@pytest.mark.asyncio
async def test_pending_and_cancelled_bookings_do_not_occupy_table(
    db_session, session_factory, test_event, make_booking
):
    async with session_factory() as session:
        await create_booking(session, make_booking(payment_reference="pi_pending"), status=PENDING)
    assert await validate_table_availability(db_session, 5, 35) is True
    await db_session.commit()

    async with session_factory() as session:
        booking = await create_booking(session, make_booking(table_id=6), status=RESERVED)
    assert await validate_table_availability(db_session, 6, 35) is False
    await db_session.commit()

    async with session_factory() as session:
        cancelled = await cancel_booking(session, booking.id)
    assert cancelled.status == CANCELLED
    assert await validate_table_availability(db_session, 6, 35) is True


@pytest.mark.asyncio
async def test_not_found_is_distinct_from_unavailable(db_session, test_event):
    with pytest.raises(NotFoundError):
        await validate_table_availability(db_session, 999, 35)
    with pytest.raises(NotFoundError):
        await validate_table_availability(db_session, 5, 999)
    with pytest.raises(NotFoundError):
        await validate_table_availability(db_session, 90, 35)


@pytest.mark.asyncio
async def test_reassignment_to_booked_table_is_rejected(db_session, session_factory, test_event, make_booking):
    """Table 7 already has a confirmed booking for event 35."""
    async with session_factory() as session:
        on_seven = await create_booking(session, make_booking(table_id=7, customer_email="seven@example.com"))

    assert await validate_table_reassignment(db_session, 7, 35) is False
    assert await validate_table_reassignment(db_session, 7, 35, exclude_booking_id=on_seven.id) is True
    assert await validate_table_reassignment(db_session, 6, 35) is True


@pytest.mark.asyncio
async def test_reassignment_to_unknown_table_raises(db_session, test_event):
    with pytest.raises(NotFoundError):
        await validate_table_reassignment(db_session, 999, 35)


def test_ticket_cutoff_boundary_instant():
    boundary = EVENT_DATE - timedelta(days=3)

    assert is_within_ticket_cutoff(EVENT_DATE, 3, now=boundary - timedelta(microseconds=1)) is True
    assert is_within_ticket_cutoff(EVENT_DATE, 3, now=boundary) is True
    assert is_within_ticket_cutoff(EVENT_DATE, 3, now=boundary + timedelta(microseconds=1)) is False


def test_ticket_cutoff_zero_days_closes_at_event_start():
    assert is_within_ticket_cutoff(EVENT_DATE, 0, now=EVENT_DATE) is True
    assert is_within_ticket_cutoff(EVENT_DATE, 0, now=EVENT_DATE + timedelta(seconds=1)) is False


def test_ticket_cutoff_naive_datetimes_are_utc():
    naive_event = EVENT_DATE.replace(tzinfo=None)
    boundary = EVENT_DATE - timedelta(days=3)
    assert is_within_ticket_cutoff(naive_event, 3, now=boundary.replace(tzinfo=None)) is True
    assert is_within_ticket_cutoff(naive_event, 3, now=boundary + timedelta(hours=1)) is False


@pytest.mark.parametrize("current,target", [
    ("pending", "confirmed"),
    ("pending", "cancelled"),
    ("reserved", "confirmed"),
    ("reserved", "cancelled"),
    ("comp", "cancelled"),
    ("confirmed", "refunded"),
])
def test_allowed_transitions(current, target):
    ensure_transition(current, target)


@pytest.mark.parametrize("current,target", [
    ("refunded", "confirmed"),
    ("cancelled", "confirmed"),
    ("cancelled", "pending"),
    ("confirmed", "cancelled"),
    ("comp", "confirmed"),
    ("pending", "refunded"),
])
def test_forbidden_transitions(current, target):
    with pytest.raises(InvalidTransitionError):
        ensure_transition(current, target)


@pytest.mark.asyncio
async def test_payload_rules(venue, make_booking):
    table = venue[5]  # seats 4

    validate_booking_payload(make_booking(), table)
    with pytest.raises(ValidationError):
        validate_booking_payload(make_booking(party_size=5), table)
    with pytest.raises(ValidationError):
        validate_booking_payload(make_booking(guest_names=["A", "B", "C"]), table)
    with pytest.raises(ValidationError):
        validate_booking_payload(make_booking(guest_names=["A", " "]), table)
    with pytest.raises(ValidationError):
        validate_booking_payload(
            make_booking(food_selections=[{"guest_index": 2, "item_id": 1, "name": "Soup"}]),
            table,
        )


# HTTP surface

@pytest.mark.asyncio
async def test_validate_table_endpoint(client: AsyncClient, test_event):
    response = await client.post("/api/v1/validate-table", json={"table_id": 5, "event_id": 35})
    assert response.status_code == 200
    assert response.json() == {"valid": True, "message": "Table is available"}


@pytest.mark.asyncio
async def test_validate_table_booked_returns_409(client: AsyncClient, confirmed_booking):
    response = await client.post("/api/v1/validate-table", json={"table_id": 5, "event_id": 35})
    assert response.status_code == 409
    assert response.json()["code"] == "CONFLICT"


@pytest.mark.asyncio
async def test_validate_table_unknown_returns_404(client: AsyncClient, test_event):
    response = await client.post("/api/v1/validate-table", json={"table_id": 999, "event_id": 35})
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_validate_table_expired_hold_returns_410(client: AsyncClient, clock, test_event):
    started = clock.now - timedelta(minutes=6)
    response = await client.post(
        "/api/v1/validate-table",
        json={"table_id": 5, "event_id": 35, "hold_start_time": started.isoformat()},
    )
    assert response.status_code == 410
    assert response.json()["detail"] == "Your table hold has expired. Please select a new table."


@pytest.mark.asyncio
async def test_validate_table_malformed_returns_400(client: AsyncClient, test_event):
    response = await client.post("/api/v1/validate-table", json={"event_id": "thirty-five"})
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_ticket_cutoff_endpoint(client: AsyncClient, test_event, closing_event):
    response = await client.get("/api/v1/events/35/ticket-cutoff")
    assert response.status_code == 200
    assert response.json()["within_cutoff"] is True
    assert response.json()["cutoff_days"] == 3

    response = await client.get("/api/v1/events/37/ticket-cutoff")
    assert response.status_code == 410
    assert response.json()["within_cutoff"] is False
    assert response.json()["code"] == "EXPIRED"

    response = await client.get("/api/v1/events/999/ticket-cutoff")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_validate_reassignment_requires_staff(client: AsyncClient, customer_headers, test_event):
    body = {"new_table_id": 7, "event_id": 35}

    response = await client.post("/api/v1/admin/validate-reassignment", json=body)
    assert response.status_code == 401

    response = await client.post("/api/v1/admin/validate-reassignment", json=body, headers=customer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_validate_reassignment_endpoint(
    client: AsyncClient, staff_headers, session_factory, test_event, make_booking
):
    async with session_factory() as session:
        on_seven = await create_booking(session, make_booking(table_id=7))

    response = await client.post(
        "/api/v1/admin/validate-reassignment",
        json={"new_table_id": 7, "event_id": 35},
        headers=staff_headers,
    )
    assert response.status_code == 409
    assert response.json()["detail"] == "Cannot reassign to an already booked table"

    response = await client.post(
        "/api/v1/admin/validate-reassignment",
        json={"booking_id": on_seven.id, "new_table_id": 7, "event_id": 35},
        headers=staff_headers,
    )
    assert response.status_code == 200
    assert response.json()["valid"] is True

    response = await client.post(
        "/api/v1/admin/validate-reassignment",
        json={"new_table_id": 999, "event_id": 35},
        headers=staff_headers,
    )
    assert response.status_code == 404
