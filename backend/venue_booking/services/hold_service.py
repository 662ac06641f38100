"""
Hold manager: short-lived, advisory table holds during checkout.

A hold only drives the "held" state customers see while they fill in
guest names and menu choices. It is never a lock. A customer can pass hold
validation and still lose the table at final submission, because the
booking writer re-validates under its own transaction; the UI has to
handle that second rejection.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from venue_booking.core.exceptions import ValidationError
from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import record_hold
from venue_booking.core.timeutils import utcnow
from venue_booking.services.interfaces.hold_store import Hold, HoldStore, hold_expired
from venue_booking.services.validation_service import ensure_table_bookable, find_active_booking

logger = get_logger(__name__)

TABLE_UNAVAILABLE = "TABLE_UNAVAILABLE"
TABLE_HELD = "TABLE_HELD"


@dataclass(frozen=True)
class HoldResult:
    issued: bool
    token: Optional[str] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None

    @classmethod
    def from_hold(cls, hold: Hold) -> "HoldResult":
        return cls(issued=True, token=hold.token, expires_at=hold.expires_at)


class HoldManager:

    def __init__(
        self,
        store: HoldStore,
        ttl: timedelta,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    async def create_hold(
        self,
        db: AsyncSession,
        table_id: int,
        event_id: int,
        session_id: str,
    ) -> HoldResult:
        """
        Issue a hold, or explain why not. Contention is an answer, not an
        error; only unknown event/table (NotFoundError) and a blank session
        id (ValidationError) raise.
        """
        if not session_id or not session_id.strip():
            raise ValidationError("session_id is required")

        await ensure_table_bookable(db, table_id, event_id)

        if await find_active_booking(db, table_id, event_id) is not None:
            record_hold("unavailable")
            logger.info("hold_rejected", event_id=event_id, table_id=table_id, reason=TABLE_UNAVAILABLE)
            return HoldResult(issued=False, reason=TABLE_UNAVAILABLE)

        candidate = Hold.issue(table_id, event_id, session_id, self.clock(), self.ttl)
        current = await self.store.acquire(candidate)

        if current.token == candidate.token:
            record_hold("issued")
            logger.info(
                "hold_issued",
                event_id=event_id,
                table_id=table_id,
                expires_at=current.expires_at.isoformat(),
            )
            return HoldResult.from_hold(current)

        if current.session_id == session_id:
            # same browser asking again: hand back the running hold, no extension
            record_hold("renewed")
            return HoldResult.from_hold(current)

        record_hold("held")
        logger.info("hold_rejected", event_id=event_id, table_id=table_id, reason=TABLE_HELD)
        return HoldResult(issued=False, reason=TABLE_HELD, expires_at=current.expires_at)

    def is_expired(self, start_time: Optional[datetime], now: Optional[datetime] = None) -> bool:
        return hold_expired(start_time, self.ttl, now if now is not None else self.clock())

    async def get_hold(self, token: str) -> Optional[Hold]:
        hold = await self.store.get(token)
        if hold is None or self.is_expired(hold.start_time):
            return None
        return hold

    async def validate_hold(self, token: str, event_id: int, table_id: int) -> bool:
        hold = await self.get_hold(token)
        return hold is not None and hold.event_id == event_id and hold.table_id == table_id

    async def release_hold(self, token: str) -> bool:
        released = await self.store.release(token)
        if released:
            logger.info("hold_released", token=token[:8])
        return released
