"""Professional profile and service model definitions."""

from sqlalchemy import Column, Integer, ForeignKey, Numeric, String
from booking_backend.database import Base


class Professional(Base):
    """A service provider that clients can book."""
    __tablename__ = "professionals"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    display_name = Column(String)


class Service(Base):
    """A bookable service offered by a professional."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("professionals.id"), index=True)
    name = Column(String)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Numeric(10, 2))
