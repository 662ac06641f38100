"""
Pre-checkout validation endpoint.

Answers from the current committed state only; the booking writer checks
again when the booking is actually written.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import ConflictError, ExpiredError
from venue_booking.db.session import get_db
from venue_booking.schemas.validation import ValidateTableRequest, ValidationResponse
from venue_booking.services.hold_service import HoldManager
from venue_booking.services.strategy_factory import get_hold_manager
from venue_booking.services.validation_service import validate_table_availability

router = APIRouter(tags=["Validation"])


@router.post("/validate-table", response_model=ValidationResponse)
async def validate_table(
    request: ValidateTableRequest,
    db: AsyncSession = Depends(get_db),
    hold_manager: HoldManager = Depends(get_hold_manager),
):
    """200 available, 404 unknown event/table, 409 booked, 410 hold expired."""
    if not await validate_table_availability(db, request.table_id, request.event_id):
        raise ConflictError(
            "Table has been booked by another customer",
            event_id=request.event_id,
            table_id=request.table_id,
        )

    if request.hold_start_time is not None and hold_manager.is_expired(request.hold_start_time):
        raise ExpiredError("Your table hold has expired. Please select a new table.")

    return ValidationResponse(valid=True, message="Table is available")
