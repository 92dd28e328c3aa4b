"""Appointment model definitions."""

import enum

from sqlalchemy import Boolean, Column, Enum, ForeignKey, Integer
from sqlalchemy.orm import relationship
from clinic_scheduler.database import Base, UTCDateTime


class AppointmentStatus(str, enum.Enum):
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    CANCELLED = 'CANCELLED'


class Appointment(Base):
    """Represents a booked consultation and its reminder state."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    slot_id = Column(Integer, ForeignKey("slots.id"))
    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    status = Column(
        Enum(AppointmentStatus, native_enum=False, length=16),
        default=AppointmentStatus.PENDING,
        nullable=False,
    )
    # Flipped false -> true once, only through a conditional update.
    reminder_sent = Column(Boolean, default=False, nullable=False)
    reminder_time = Column(UTCDateTime)

    patient = relationship("User", foreign_keys=[patient_id])
    doctor = relationship("User", foreign_keys=[doctor_id])
    slot = relationship("Slot")
