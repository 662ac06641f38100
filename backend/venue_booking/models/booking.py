"""
Booking model representing a party's reservation for an event.

Key design decisions:
- Partial unique index on (event_id, table_id) over the active statuses is the
  authoritative guard against double-booking a table; every writer relies on it
- Status changes retire bookings instead of deleting them
- Guest names and food/wine selections are denormalized JSON owned by the booking
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Index, CheckConstraint, Text, text,
)
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, JSONType, TimestampMixin

PENDING = "pending"
RESERVED = "reserved"
COMP = "comp"
CONFIRMED = "confirmed"
CANCELLED = "cancelled"
REFUNDED = "refunded"

BOOKING_STATUSES = (PENDING, RESERVED, COMP, CONFIRMED, CANCELLED, REFUNDED)

# Statuses that occupy a table and count against event inventory
ACTIVE_STATUSES = frozenset({CONFIRMED, RESERVED, COMP})
TERMINAL_STATUSES = frozenset({CANCELLED, REFUNDED})

_ACTIVE_SQL = text("status IN ('confirmed', 'reserved', 'comp')")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    table_id = Column(Integer, ForeignKey("tables.id"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    customer_email = Column(String(255), nullable=False, index=True)
    party_size = Column(Integer, nullable=False, default=1)
    guest_names = Column(JSONType, nullable=False, default=list)
    food_selections = Column(JSONType, nullable=False, default=list)
    wine_selections = Column(JSONType, nullable=False, default=list)

    payment_reference = Column(String(255), nullable=True, unique=True)
    amount = Column(Integer, nullable=True)  # cents
    status = Column(String(20), nullable=False, default=PENDING)
    checked_in_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    event = relationship("Event", back_populates="bookings", lazy="noload")

    __table_args__ = (
        Index(
            "uq_active_booking_per_table",
            "event_id",
            "table_id",
            unique=True,
            postgresql_where=_ACTIVE_SQL,
            sqlite_where=_ACTIVE_SQL,
        ),
        CheckConstraint("party_size > 0", name="check_booking_party_size_positive"),
        CheckConstraint(
            "status IN ('pending', 'reserved', 'comp', 'confirmed', 'cancelled', 'refunded')",
            name="check_booking_status",
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, event={self.event_id}, table={self.table_id}, "
            f"status={self.status})>"
        )
