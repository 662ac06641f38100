"""
Redis-backed hold store, shared by every API instance.

Keys:
  hold:{event_id}:{table_id}  -> JSON hold, SET NX with the hold TTL
  holdtoken:{token}           -> slot key, same TTL

Circuit breaker:
  On Redis failure the store "fails open": the hold is reported as issued
  and lookups find nothing. Holds are advisory only, the bookings table
  stays authoritative, so a Redis outage degrades the "held" UX without
  ever allowing a double booking.
"""

import json
from typing import Optional

import redis.asyncio as redis

from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import redis_connection_errors
from venue_booking.services.interfaces.hold_store import Hold, HoldStore

logger = get_logger(__name__)


def k_slot(event_id: int, table_id: int) -> str:
    return f"hold:{event_id}:{table_id}"


def k_token(token: str) -> str:
    return f"holdtoken:{token}"


class RedisHoldStore(HoldStore):

    def __init__(self, client: redis.Redis):
        self.redis = client

    async def acquire(self, hold: Hold) -> Hold:
        slot = k_slot(hold.event_id, hold.table_id)
        ttl_ms = max(hold.ttl_seconds, 1) * 1000
        try:
            stored = await self.redis.set(slot, json.dumps(hold.to_dict()), nx=True, px=ttl_ms)
            if stored:
                await self.redis.set(k_token(hold.token), slot, px=ttl_ms)
                return hold
            raw = await self.redis.get(slot)
        except redis.RedisError as e:
            redis_connection_errors.inc()
            logger.error("hold_store_unavailable", operation="acquire", error=str(e))
            return hold
        if raw is None:
            # expired between SET NX and GET; one more try
            return await self.acquire(hold)
        return Hold.from_dict(json.loads(raw))

    async def get(self, token: str) -> Optional[Hold]:
        try:
            slot = await self.redis.get(k_token(token))
            if slot is None:
                return None
            raw = await self.redis.get(slot)
        except redis.RedisError as e:
            redis_connection_errors.inc()
            logger.error("hold_store_unavailable", operation="get", error=str(e))
            return None
        if raw is None:
            return None
        hold = Hold.from_dict(json.loads(raw))
        return hold if hold.token == token else None

    async def get_for_table(self, event_id: int, table_id: int) -> Optional[Hold]:
        try:
            raw = await self.redis.get(k_slot(event_id, table_id))
        except redis.RedisError as e:
            redis_connection_errors.inc()
            logger.error("hold_store_unavailable", operation="get_for_table", error=str(e))
            return None
        return Hold.from_dict(json.loads(raw)) if raw else None

    async def release(self, token: str) -> bool:
        hold = await self.get(token)
        if hold is None:
            return False
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(k_slot(hold.event_id, hold.table_id))
            pipe.delete(k_token(token))
            await pipe.execute()
        except redis.RedisError as e:
            redis_connection_errors.inc()
            logger.error("hold_store_unavailable", operation="release", error=str(e))
            return False
        return True
