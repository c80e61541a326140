"""User model definitions."""

from sqlalchemy import Column, Integer, String
from booking_backend.database import Base

CLIENT_ROLE = "client"
PROFESSIONAL_ROLE = "professional"
ADMIN_ROLE = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    hashed_password = Column(String)
    role = Column(String, default=CLIENT_ROLE)  # client/professional/admin
