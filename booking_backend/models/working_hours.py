"""Working hours model definitions."""

from sqlalchemy import Column, Integer, ForeignKey, Time, UniqueConstraint
from booking_backend.database import Base


class WorkingHours(Base):
    """A professional's opening window for one weekday (0 = Sunday)."""
    __tablename__ = "professional_schedules"
    __table_args__ = (
        UniqueConstraint("professional_id", "day_of_week", name="uq_professional_schedules_day"),
    )

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
