"""In-app notification model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from booking_backend.database import Base

REMINDER_KIND = "reminder"


class Notification(Base):
    """A message shown in a user's notification inbox."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True)
    kind = Column(String, nullable=False)
    title = Column(String)
    body = Column(String)
    read = Column(Boolean, default=False)
    scheduled_for = Column(DateTime)
    created_at = Column(DateTime, default=datetime.now)
