"""
Physical table in a venue.

There is deliberately no "booked" column: whether a table is free for an
event is derived from the bookings that reference it.
"""

from sqlalchemy import Boolean, Column, Integer, UniqueConstraint, CheckConstraint

from venue_booking.db.base import Base, TimestampMixin


class VenueTable(Base, TimestampMixin):
    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True)
    venue_id = Column(Integer, nullable=False, index=True)
    table_number = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False, default=4)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("venue_id", "table_number", name="uq_venue_table_number"),
        CheckConstraint("capacity > 0", name="check_table_capacity_positive"),
    )

    def __repr__(self) -> str:
        return f"<VenueTable(id={self.id}, venue={self.venue_id}, number={self.table_number})>"
