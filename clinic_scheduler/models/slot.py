"""Slot and day-off model definitions."""

import enum

from sqlalchemy import Boolean, Column, Date, Enum, ForeignKey, Integer, String, UniqueConstraint
from clinic_scheduler.database import Base, UTCDateTime


class AppointmentMode(str, enum.Enum):
    IN_PERSON = 'IN_PERSON'
    ONLINE = 'ONLINE'


class Slot(Base):
    """A fixed bookable window owned by the provider."""
    __tablename__ = "slots"
    __table_args__ = (UniqueConstraint('owner_id', 'start_at', name='uq_slots_owner_start'),)

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    mode = Column(Enum(AppointmentMode, native_enum=False, length=16), nullable=False)
    is_booked = Column(Boolean, default=False, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)


class DayOff(Base):
    """A business-local date on which the provider does not see patients."""
    __tablename__ = "day_offs"
    __table_args__ = (UniqueConstraint('owner_id', 'date', name='uq_day_offs_owner_date'),)

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(Date, nullable=False)
    reason = Column(String)
