"""
Payment reconciliation bookkeeping.

- ProcessedWebhookEvent: one row per provider event id, written in the same
  transaction as the status change it caused (replays hit the primary key)
- ReconciliationRecord: audit trail of every event applied or skipped
- UnmatchedPayment: admin queue of payments with no usable local booking
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from venue_booking.core.timeutils import utcnow
from venue_booking.db.base import Base, JSONType, TimestampMixin


class ProcessedWebhookEvent(Base):
    __tablename__ = "processed_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ReconciliationRecord(Base, TimestampMixin):
    __tablename__ = "reconciliation_records"

    id = Column(Integer, primary_key=True, index=True)
    provider_event_id = Column(String(255), nullable=True, index=True)
    event_type = Column(String(100), nullable=False)
    payment_reference = Column(String(255), nullable=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)
    previous_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=True)
    amount = Column(Integer, nullable=True)
    outcome = Column(String(50), nullable=False)


class UnmatchedPayment(Base, TimestampMixin):
    __tablename__ = "unmatched_payments"

    id = Column(Integer, primary_key=True, index=True)
    provider_event_id = Column(String(255), nullable=True, index=True)
    event_type = Column(String(100), nullable=False)
    payment_reference = Column(String(255), nullable=False, index=True)
    amount = Column(Integer, nullable=True)
    reason = Column(String(50), nullable=False)  # no_booking, table_conflict
    payload = Column(JSONType, nullable=True)
    resolved_booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None
