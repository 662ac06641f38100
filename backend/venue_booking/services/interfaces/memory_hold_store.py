"""
Process-local hold store with explicit TTL eviction.
"""

import heapq
from datetime import datetime
from typing import Callable, Optional

from venue_booking.core.metrics import active_holds
from venue_booking.core.timeutils import utcnow
from venue_booking.services.interfaces.hold_store import Hold, HoldStore


class InMemoryHoldStore(HoldStore):
    """
    Holds keyed by (event_id, table_id), with a token index and a heap ordered
    by expiry. Every call evicts what has expired first, so the maps never
    serve a stale hold.

    Only valid while the service runs as a single process; scale out with
    RedisHoldStore instead.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._by_slot: dict[tuple[int, int], Hold] = {}
        self._by_token: dict[str, tuple[int, int]] = {}
        self._expiry: list[tuple[datetime, str]] = []

    def purge_expired(self) -> int:
        now = self._clock()
        evicted = 0
        while self._expiry and self._expiry[0][0] < now:
            _, token = heapq.heappop(self._expiry)
            if self._drop(token):
                evicted += 1
        active_holds.set(len(self._by_slot))
        return evicted

    def _drop(self, token: str) -> bool:
        slot = self._by_token.pop(token, None)
        if slot is None:
            return False
        held = self._by_slot.get(slot)
        if held is not None and held.token == token:
            del self._by_slot[slot]
        return True

    async def acquire(self, hold: Hold) -> Hold:
        self.purge_expired()
        slot = (hold.event_id, hold.table_id)
        current = self._by_slot.get(slot)
        if current is not None:
            return current
        self._by_slot[slot] = hold
        self._by_token[hold.token] = slot
        heapq.heappush(self._expiry, (hold.expires_at, hold.token))
        active_holds.set(len(self._by_slot))
        return hold

    async def get(self, token: str) -> Optional[Hold]:
        self.purge_expired()
        slot = self._by_token.get(token)
        return self._by_slot.get(slot) if slot is not None else None

    async def get_for_table(self, event_id: int, table_id: int) -> Optional[Hold]:
        self.purge_expired()
        return self._by_slot.get((event_id, table_id))

    async def release(self, token: str) -> bool:
        self.purge_expired()
        released = self._drop(token)
        active_holds.set(len(self._by_slot))
        return released

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._by_slot)
