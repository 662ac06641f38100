"""
Event model with seat/table inventory tracking.

Key design decisions:
- `available_seats` / `available_tables` are denormalized counters mutated
  together with the booking status change that caused them
- CHECK constraints are the last line of defense against overselling
- `version` is bumped on every counter mutation so stale readers can tell
"""

from sqlalchemy import Boolean, Column, Integer, String, DateTime, Index, CheckConstraint
from sqlalchemy.orm import relationship

from venue_booking.db.base import Base, TimestampMixin

EVENT_TYPES = ("full", "ticket-only")


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    venue_id = Column(Integer, nullable=False, index=True)
    event_type = Column(String(20), nullable=False, default="full")

    total_seats = Column(Integer, nullable=False)
    total_tables = Column(Integer, nullable=False, default=0)
    available_seats = Column(Integer, nullable=False)
    available_tables = Column(Integer, nullable=False, default=0)

    ticket_cutoff_days = Column(Integer, nullable=False, default=3)
    is_active = Column(Boolean, nullable=False, default=True)

    version = Column(Integer, nullable=False, default=1)

    bookings = relationship("Booking", back_populates="event", lazy="noload")

    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        CheckConstraint("available_tables >= 0", name="check_available_tables_non_negative"),
        CheckConstraint("available_seats <= total_seats", name="check_available_seats_lte_total"),
        CheckConstraint("available_tables <= total_tables", name="check_available_tables_lte_total"),
        CheckConstraint("ticket_cutoff_days >= 0", name="check_ticket_cutoff_non_negative"),
        CheckConstraint("event_type IN ('full', 'ticket-only')", name="check_event_type"),
        Index("ix_events_date", "date"),
    )

    @property
    def is_ticket_only(self) -> bool:
        return self.event_type == "ticket-only"

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, title={self.title}, "
            f"seats={self.available_seats}/{self.total_seats}, "
            f"tables={self.available_tables}/{self.total_tables})>"
        )
