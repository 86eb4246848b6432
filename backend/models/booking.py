"""Booking model definitions."""

from sqlalchemy import Column, DateTime, Integer, String
from backend.core.clock import utcnow
from backend.database import Base


class Booking(Base):
    """Represents a client's reservation against a slot's time range."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    external_event_ref = Column(String)  # calendar event id, set after sync
