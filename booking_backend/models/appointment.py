"""Appointment model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, String, Time, text
from booking_backend.database import Base


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

_ACTIVE_SLOT_CONDITION = text("status IN ('scheduled', 'confirmed')")


class Appointment(Base):
    """Represents a client's booking with a professional."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_professional_date", "professional_id", "date"),
        Index(
            "uq_appointments_active_slot",
            "professional_id",
            "date",
            "start_time",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_CONDITION,
            sqlite_where=_ACTIVE_SLOT_CONDITION,
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    notes = Column(String)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)

    @property
    def status_value(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status_value in ACTIVE_STATUSES
