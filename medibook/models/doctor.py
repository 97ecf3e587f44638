"""Doctor model definitions."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String
from medibook.database import Base


class Doctor(Base):
    """A doctor profile with its recurring weekly availability."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True)
    full_name = Column(String)
    specialty = Column(String)
    department = Column(String, index=True)
    bio = Column(String)
    avatar_url = Column(String)
    is_approved = Column(Boolean, default=False)
    availability_slots = Column(JSON, default=list)
