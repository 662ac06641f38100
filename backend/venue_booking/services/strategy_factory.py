"""
Collaborator factory.
Configures which hold store, payment provider and notifier the API uses.

Each getter doubles as a FastAPI dependency, so tests swap implementations
through `app.dependency_overrides` instead of patching modules.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Optional

from venue_booking.core.config import get_settings
from venue_booking.core.logging import get_logger
from venue_booking.infrastructure import get_redis
from venue_booking.services.hold_service import HoldManager
from venue_booking.services.interfaces import HoldStore, InMemoryHoldStore
from venue_booking.services.notification_service import HttpNotifier, LoggingNotifier, Notifier
from venue_booking.services.payment_provider import MockPay, PaymentAdapter, StripeAdapter
from venue_booking.services.redis_hold_store import RedisHoldStore

logger = get_logger(__name__)
settings = get_settings()


async def build_hold_store() -> HoldStore:
    """
    Hold store selection based on HOLD_STORE:
    - memory: InMemoryHoldStore (single instance)
    - redis: RedisHoldStore (shared across instances)

    A redis store that cannot connect at startup runs on process-local
    holds instead; holds are advisory, bookings stay correct either way.
    """
    if settings.HOLD_STORE == "redis":
        client = await get_redis()
        if client is not None:
            return RedisHoldStore(client)
        logger.warning("hold_store_degraded", requested="redis", using="memory")
    return InMemoryHoldStore()


# Singleton instance
_hold_manager: Optional[HoldManager] = None


async def get_hold_manager() -> HoldManager:
    """Get hold manager singleton."""
    global _hold_manager
    if _hold_manager is None:
        _hold_manager = HoldManager(
            await build_hold_store(),
            ttl=timedelta(minutes=settings.HOLD_TTL_MINUTES),
        )
    return _hold_manager


def reset_hold_manager() -> None:
    global _hold_manager
    _hold_manager = None


@lru_cache()
def get_payment_adapter() -> PaymentAdapter:
    if settings.PAYMENT_PROVIDER == "stripe":
        return StripeAdapter(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
    return MockPay(settings.MOCKPAY_SECRET)


@lru_cache()
def get_notifier() -> Notifier:
    if settings.NOTIFY_URL:
        return HttpNotifier(settings.NOTIFY_URL, timeout=settings.NOTIFY_TIMEOUT_SECONDS)
    return LoggingNotifier()
