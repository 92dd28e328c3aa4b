"""User model definitions."""

from sqlalchemy import Column, Integer, String
from clinic_scheduler.database import Base

ROLE_PATIENT = 'patient'
ROLE_ADMIN = 'admin'


class User(Base):
    """A patient, or the single provider who owns every slot."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String)
    email = Column(String, unique=True, index=True)
    phone = Column(String)
    role = Column(String, default=ROLE_PATIENT)  # patient/admin
