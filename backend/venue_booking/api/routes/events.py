"""
Event endpoints with Redis caching on list operations.
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import ExpiredError
from venue_booking.core.logging import get_logger
from venue_booking.core.security import CurrentUser, require_staff
from venue_booking.db.session import get_db
from venue_booking.schemas.event import EventCreate, EventResponse, EventListResponse, TableAvailability
from venue_booking.schemas.validation import TicketCutoffResponse
from venue_booking.services.cache_service import get_cached_events, set_cached_events, invalidate_event_cache
from venue_booking.services.event_service import (
    check_ticket_cutoff, create_event, get_event, list_events, list_tables_with_availability,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. Backoffice only."""
    event = await create_event(db, event_data)
    await invalidate_event_cache()
    return event


@router.get("", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """
    List events with pagination.
    Cached in Redis; invalidated whenever a booking moves the counters.
    """
    cached = await get_cached_events(page, page_size, upcoming_only)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await list_events(db, page, page_size, upcoming_only)

    response_data = {
        "events": [EventResponse.model_validate(e).model_dump() for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(page, page_size, upcoming_only, response_data)

    return EventListResponse(**response_data)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Not cached (needs real-time seat counts)."""
    return await get_event(db, event_id)


@router.get("/{event_id}/tables", response_model=list[TableAvailability])
async def list_event_tables(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await list_tables_with_availability(db, event_id)


@router.get(
    "/{event_id}/ticket-cutoff",
    response_model=TicketCutoffResponse,
    responses={410: {"model": TicketCutoffResponse}},
)
async def ticket_cutoff(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """200 while tickets are on sale, 410 once the cutoff has passed."""
    result = await check_ticket_cutoff(db, event_id)
    if not result.within_cutoff:
        return JSONResponse(
            status_code=status.HTTP_410_GONE,
            content={**jsonable_encoder(result), "code": ExpiredError.code},
        )
    return result
