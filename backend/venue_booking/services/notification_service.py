"""
Notification service client (booking confirmations, refund notices).

Delivery itself happens elsewhere; this side only hands over a payload
keyed by booking id. Sending is always best-effort: callers go through
`notify_safely`, so a failed notification is logged and counted but never
undoes the booking or refund it describes.
"""

from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import httpx

from venue_booking.core.exceptions import UpstreamError
from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import notification_failures
from venue_booking.models.booking import Booking

logger = get_logger(__name__)


def booking_payload(booking: Booking) -> dict:
    return {
        "booking_id": booking.id,
        "event_id": booking.event_id,
        "table_id": booking.table_id,
        "customer_email": booking.customer_email,
        "party_size": booking.party_size,
        "guest_names": booking.guest_names,
        "status": booking.status,
    }


class Notifier(ABC):

    @abstractmethod
    async def send_booking_confirmation(self, booking: Booking) -> None: ...

    @abstractmethod
    async def send_refund_notification(self, booking: Booking, amount: Optional[int]) -> None: ...


class LoggingNotifier(Notifier):
    """Used when no notification service is configured."""

    async def send_booking_confirmation(self, booking: Booking) -> None:
        logger.info("notification_logged", kind="booking_confirmation", booking_id=booking.id)

    async def send_refund_notification(self, booking: Booking, amount: Optional[int]) -> None:
        logger.info("notification_logged", kind="refund_notification", booking_id=booking.id, amount=amount)


class HttpNotifier(Notifier):

    def __init__(self, url: str, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def _post(self, kind: str, payload: dict) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json={"kind": kind, **payload})
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise UpstreamError(f"Notification service failed: {e}", kind=kind)

    async def send_booking_confirmation(self, booking: Booking) -> None:
        await self._post("booking_confirmation", booking_payload(booking))

    async def send_refund_notification(self, booking: Booking, amount: Optional[int]) -> None:
        await self._post("refund_notification", {**booking_payload(booking), "refund_amount": amount})


async def notify_safely(kind: str, send: Callable[..., Awaitable[None]], *args) -> bool:
    """Run one notification; report failure instead of raising it."""
    try:
        await send(*args)
        return True
    except UpstreamError as e:
        notification_failures.labels(kind=kind).inc()
        logger.warning("notification_failed", kind=kind, error=e.message)
        return False
