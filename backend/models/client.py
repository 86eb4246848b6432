"""Client profile model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String
from backend.core.clock import utcnow
from backend.database import Base


class Client(Base):
    """Represents an extended client profile linked to a booking."""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"))
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String)
    dob = Column(Date)
    address = Column(String)
    notes = Column(String)
    created_at = Column(DateTime, nullable=False, default=utcnow)
