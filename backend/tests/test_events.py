"""
Tests for event endpoints, table maps and the availability repair tool.
"""

import pytest
from datetime import datetime, timezone, timedelta
from httpx import AsyncClient
from sqlalchemy import update

from venue_booking.models.event import Event


def event_body(**overrides) -> dict:
    body = {
        "title": "Gypsy Jazz Brunch",
        "description": "Manouche trio and a set menu",
        "date": (datetime.now(timezone.utc) + timedelta(days=30)).isoformat(),
        "venue_id": 1,
        "total_seats": 60,
        "total_tables": 12,
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
async def test_create_event(client: AsyncClient, staff_headers):
    """Staff can create an event; counters start full, cutoff defaults to 3 days."""
    response = await client.post("/api/v1/events", json=event_body(), headers=staff_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["title"] == "Gypsy Jazz Brunch"
    assert data["available_seats"] == 60
    assert data["available_tables"] == 12
    assert data["ticket_cutoff_days"] == 3
    assert data["event_type"] == "full"


@pytest.mark.asyncio
async def test_create_ticket_only_event_has_no_tables(client: AsyncClient, staff_headers):
    response = await client.post(
        "/api/v1/events",
        json=event_body(event_type="ticket-only", total_tables=12, ticket_cutoff_days=0),
        headers=staff_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["total_tables"] == 0
    assert data["available_tables"] == 0
    assert data["ticket_cutoff_days"] == 0


@pytest.mark.asyncio
async def test_create_event_requires_staff(client: AsyncClient, customer_headers):
    response = await client.post("/api/v1/events", json=event_body())
    assert response.status_code == 401

    response = await client.post("/api/v1/events", json=event_body(), headers=customer_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_create_event_past_date(client: AsyncClient, staff_headers):
    """Event with past date returns 400."""
    past_date = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
    response = await client.post("/api/v1/events", json=event_body(date=past_date), headers=staff_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_list_events(client: AsyncClient, test_event, ticket_only_event):
    """List returns paginated upcoming events."""
    response = await client.get("/api/v1/events")
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["cached"] is False
    assert {e["id"] for e in data["events"]} == {35, 36}


@pytest.mark.asyncio
async def test_get_event(client: AsyncClient, test_event):
    response = await client.get("/api/v1/events/35")
    assert response.status_code == 200
    assert response.json()["available_tables"] == 3


@pytest.mark.asyncio
async def test_get_nonexistent_event(client: AsyncClient):
    """Non-existent event returns 404."""
    response = await client.get("/api/v1/events/99999")
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_table_map(client: AsyncClient, confirmed_booking):
    response = await client.get("/api/v1/events/35/tables")
    assert response.status_code == 200
    tables = response.json()
    assert [t["id"] for t in tables] == [5, 6, 7]
    assert [t["is_available"] for t in tables] == [False, True, True]
    assert tables[2]["capacity"] == 8


@pytest.mark.asyncio
async def test_ticket_only_event_has_empty_table_map(client: AsyncClient, ticket_only_event):
    response = await client.get("/api/v1/events/36/tables")
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_sync_availability_repairs_drift(
    client: AsyncClient, session_factory, fetch, staff_headers, customer_headers, confirmed_booking
):
    async with session_factory() as session:
        await session.execute(
            update(Event).where(Event.id == 35).values(available_seats=11, available_tables=0)
        )
        await session.commit()

    url = "/api/v1/admin/events/35/sync-availability"
    assert (await client.post(url, headers=customer_headers)).status_code == 403

    response = await client.post(url, headers=staff_headers)
    assert response.status_code == 200
    assert response.json()["available_seats"] == 38
    assert response.json()["available_tables"] == 2

    event = await fetch(Event, 35)
    assert event.available_seats == 38
    assert event.version == 3  # booking, then the repair

    response = await client.post(url, headers=staff_headers)
    assert response.status_code == 200
    assert (await fetch(Event, 35)).version == 3

    response = await client.post("/api/v1/admin/events/999/sync-availability", headers=staff_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_metrics_exposes_booking_counters(client: AsyncClient, booking_payload, test_event):
    await client.post("/api/v1/bookings", json=booking_payload())

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "booking_attempts_total" in response.text
    assert response.headers["X-Request-ID"]
