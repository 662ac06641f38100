"""
Backoffice endpoints. Every route requires a staff token: 401 without one,
403 for a customer token.
"""

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import ConflictError
from venue_booking.core.logging import get_logger
from venue_booking.core.security import CurrentUser, require_staff
from venue_booking.db.session import get_db
from venue_booking.schemas.booking import (
    AdminBookingCreate, BookingResponse, MarkPaidRequest, ReassignTableRequest, RefundRequest,
)
from venue_booking.schemas.event import EventResponse
from venue_booking.schemas.payment import RecoverBookingRequest, RecoverBookingResponse, UnmatchedPaymentResponse
from venue_booking.schemas.validation import ValidateReassignmentRequest, ValidationResponse
from venue_booking.services.availability_service import sync_event_availability
from venue_booking.services.booking_service import (
    cancel_booking, check_in_booking, create_booking, list_event_bookings, reassign_table,
)
from venue_booking.services.cache_service import invalidate_event_cache
from venue_booking.services.notification_service import Notifier
from venue_booking.services.payment_provider import PaymentAdapter
from venue_booking.services.payment_service import confirm_booking_paid, list_unmatched_payments, refund_booking
from venue_booking.services.recovery_service import recover_booking
from venue_booking.services.strategy_factory import get_notifier, get_payment_adapter
from venue_booking.services.validation_service import validate_table_reassignment

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])


@router.post("/validate-reassignment", response_model=ValidationResponse)
async def validate_reassignment(
    request: ValidateReassignmentRequest,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    valid = await validate_table_reassignment(
        db, request.new_table_id, request.event_id, exclude_booking_id=request.booking_id
    )
    if not valid:
        raise ConflictError(
            "Cannot reassign to an already booked table",
            event_id=request.event_id,
            table_id=request.new_table_id,
        )
    return ValidationResponse(valid=True, message="Table reassignment is valid")


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_manual_booking(
    booking_data: AdminBookingCreate,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Reserved (pay later via link) or comp booking entered by staff. No ticket cutoff."""
    booking = await create_booking(
        db,
        booking_data,
        status=booking_data.status,
        enforce_cutoff=False,
        notes=booking_data.notes,
    )
    logger.info("manual_booking_created", booking_id=booking.id, staff_id=staff.id, status=booking.status)
    await invalidate_event_cache()
    return booking


@router.get("/events/{event_id}/bookings", response_model=list[BookingResponse])
async def list_bookings_for_event(
    event_id: int,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await list_event_bookings(db, event_id)


@router.post("/bookings/{booking_id}/reassign", response_model=BookingResponse)
async def reassign_booking_table(
    booking_id: int,
    request: ReassignTableRequest,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    booking = await reassign_table(db, booking_id, request.new_table_id)
    logger.info("admin_reassigned_table", booking_id=booking_id, staff_id=staff.id)
    return booking


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    booking = await cancel_booking(db, booking_id)
    await invalidate_event_cache()
    return booking


@router.post("/bookings/{booking_id}/check-in", response_model=BookingResponse)
async def check_in_endpoint(
    booking_id: int,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await check_in_booking(db, booking_id)


@router.post("/bookings/{booking_id}/refund", response_model=BookingResponse)
async def refund_endpoint(
    booking_id: int,
    request: RefundRequest,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    provider: PaymentAdapter = Depends(get_payment_adapter),
    notifier: Notifier = Depends(get_notifier),
):
    """Refund through the payment provider, then mark the booking refunded."""
    booking = await refund_booking(
        db,
        booking_id,
        provider,
        notifier=notifier,
        amount=request.amount,
        reason=request.reason,
    )
    await invalidate_event_cache()
    return booking


@router.post("/bookings/{booking_id}/mark-paid", response_model=BookingResponse)
async def mark_paid_endpoint(
    booking_id: int,
    request: MarkPaidRequest,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Confirm a reserved booking paid at the venue or by transfer."""
    booking = await confirm_booking_paid(
        db,
        booking_id,
        request.amount,
        payment_reference=request.payment_reference,
        notifier=notifier,
    )
    logger.info("admin_marked_paid", booking_id=booking_id, staff_id=staff.id)
    await invalidate_event_cache()
    return booking


@router.post("/recover-booking", response_model=RecoverBookingResponse)
async def recover_booking_endpoint(
    request: RecoverBookingRequest,
    response: Response,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    provider: PaymentAdapter = Depends(get_payment_adapter),
):
    """
    Re-create the booking behind a paid-but-unmatched payment.
    201 when a booking was created, 200 when it already existed.
    """
    booking, created = await recover_booking(
        db,
        request.payment_reference,
        request.booking,
        provider=provider if request.verify_payment else None,
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    await invalidate_event_cache()
    logger.info("admin_recovered_booking", booking_id=booking.id, staff_id=staff.id, created=created)
    return RecoverBookingResponse(created=created, booking_id=booking.id, status=booking.status)


@router.get("/unmatched-payments", response_model=list[UnmatchedPaymentResponse])
async def unmatched_payments_endpoint(
    include_resolved: bool = Query(False),
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await list_unmatched_payments(db, include_resolved=include_resolved)


@router.post("/events/{event_id}/sync-availability", response_model=EventResponse)
async def sync_availability_endpoint(
    event_id: int,
    staff: CurrentUser = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    event = await sync_event_availability(db, event_id)
    await invalidate_event_cache()
    return event
