"""
Hold store interface.

A hold is an advisory, time-boxed claim on a table shown to one checkout
session. Stores only have to keep holds until they expire and answer
"who holds this table right now"; correctness of the booking itself is
enforced at write time by the database, never by a hold.

Implementations:
- InMemoryHoldStore: process-local, fine for a single instance
- RedisHoldStore: shared between instances, TTL eviction done by Redis
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from venue_booking.core.timeutils import as_utc, utcnow


def hold_expired(start_time: Optional[datetime], ttl: timedelta, now: Optional[datetime] = None) -> bool:
    """
    A hold is expired once strictly more than `ttl` has elapsed since it
    started. No start time means no hold was ever taken, so there is nothing
    to expire: False. Callers asking whether a hold is live must check for
    the hold itself, not for "not expired".
    """
    if start_time is None:
        return False
    now = as_utc(now) if now is not None else utcnow()
    return now - as_utc(start_time) > ttl


@dataclass(frozen=True)
class Hold:
    table_id: int
    event_id: int
    session_id: str
    token: str
    start_time: datetime
    ttl_seconds: int

    @classmethod
    def issue(cls, table_id: int, event_id: int, session_id: str, start_time: datetime, ttl: timedelta) -> "Hold":
        return cls(
            table_id=table_id,
            event_id=event_id,
            session_id=session_id,
            token=uuid.uuid4().hex,
            start_time=as_utc(start_time),
            ttl_seconds=int(ttl.total_seconds()),
        )

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.ttl_seconds)

    @property
    def expires_at(self) -> datetime:
        return self.start_time + self.ttl

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return hold_expired(self.start_time, self.ttl, now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["start_time"] = self.start_time.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Hold":
        return cls(
            table_id=int(data["table_id"]),
            event_id=int(data["event_id"]),
            session_id=data["session_id"],
            token=data["token"],
            start_time=as_utc(datetime.fromisoformat(data["start_time"])),
            ttl_seconds=int(data["ttl_seconds"]),
        )


class HoldStore(ABC):

    @abstractmethod
    async def acquire(self, hold: Hold) -> Hold:
        """
        Store `hold` if nobody holds its (event, table) slot.

        Returns the hold now occupying the slot: `hold` itself when it was
        stored, otherwise the live hold that was already there.
        """

    @abstractmethod
    async def get(self, token: str) -> Optional[Hold]:
        """Look up a live hold by token."""

    @abstractmethod
    async def get_for_table(self, event_id: int, table_id: int) -> Optional[Hold]:
        """Live hold on a table, if any."""

    @abstractmethod
    async def release(self, token: str) -> bool:
        """Drop a hold. Returns False if it was unknown or already gone."""
