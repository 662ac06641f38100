"""
Table hold endpoints. Holds are advisory; see HoldManager.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import ExpiredError
from venue_booking.db.session import get_db
from venue_booking.schemas.hold import HoldCreate, HoldResponse, HoldValidateRequest, HoldValidateResponse
from venue_booking.services.hold_service import HoldManager
from venue_booking.services.strategy_factory import get_hold_manager

router = APIRouter(prefix="/holds", tags=["Holds"])


@router.post("", response_model=HoldResponse)
async def create_hold_endpoint(
    hold_data: HoldCreate,
    db: AsyncSession = Depends(get_db),
    hold_manager: HoldManager = Depends(get_hold_manager),
):
    """
    Hold a table for the checkout session. A table that is booked or held
    by another session comes back with issued=false and a reason, not an
    error status.
    """
    result = await hold_manager.create_hold(db, hold_data.table_id, hold_data.event_id, hold_data.session_id)
    return HoldResponse(
        issued=result.issued,
        token=result.token,
        expires_at=result.expires_at,
        reason=result.reason,
    )


@router.post("/validate", response_model=HoldValidateResponse)
async def validate_hold_endpoint(
    request: HoldValidateRequest,
    hold_manager: HoldManager = Depends(get_hold_manager),
):
    if not await hold_manager.validate_hold(request.token, request.event_id, request.table_id):
        raise ExpiredError("Your table hold has expired. Please select a new table.")
    return HoldValidateResponse(valid=True, message="Hold is active")


@router.delete("/{token}", status_code=status.HTTP_204_NO_CONTENT)
async def release_hold_endpoint(
    token: str,
    hold_manager: HoldManager = Depends(get_hold_manager),
):
    await hold_manager.release_hold(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
