"""Account rows shared by patients, doctors and admins."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, String
from medibook.auth.identity import ROLE_PATIENT
from medibook.database import Base


class User(Base):
    """A signed-in account; doctors additionally own a Doctor profile."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    hashed_password = Column(String)
    role = Column(String, default=ROLE_PATIENT, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
