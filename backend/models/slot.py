"""Slot model definitions."""

from sqlalchemy import Column, DateTime, Integer, UniqueConstraint
from backend.core.clock import utcnow
from backend.database import Base


class Slot(Base):
    """Represents an admin-defined bookable time range."""
    __tablename__ = "slots"
    __table_args__ = (
        UniqueConstraint("start_time", "end_time", name="uq_slots_time_range"),
    )

    id = Column(Integer, primary_key=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    capacity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=utcnow)
