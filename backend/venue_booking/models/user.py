"""
User model. Staff sign in to the backoffice; customers may book as guests.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint

from venue_booking.db.base import Base, TimestampMixin

USER_ROLES = ("admin", "venue_owner", "venue_manager", "hostess", "customer")


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="customer")
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "role IN ('admin', 'venue_owner', 'venue_manager', 'hostess', 'customer')",
            name="check_user_role",
        ),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
