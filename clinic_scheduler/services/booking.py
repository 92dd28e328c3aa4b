"""Race-free slot booking.

The booked flag is only ever flipped by a conditional update in the same
transaction that creates the appointment. Concurrent callers for one slot
therefore see exactly one success; everybody else gets ``SlotAlreadyBooked``.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.errors import (
    PatientNotFound,
    SlotAlreadyBooked,
    SlotNotFound,
    SlotUnavailable,
    StorageUnavailable,
)
from clinic_scheduler.core.settings import SchedulerSettings
from clinic_scheduler.models.appointment import Appointment, AppointmentStatus
from clinic_scheduler.models.slot import AppointmentMode, Slot
from clinic_scheduler.services import slot_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppointmentDraft:
    patient_id: int
    status: AppointmentStatus = AppointmentStatus.CONFIRMED


class BookingCoordinator:
    def __init__(
        self,
        clock: TimeZoneClock,
        settings: SchedulerSettings,
        on_booked: Callable[[int], None] | None = None,
    ) -> None:
        self.clock = clock
        self.settings = settings
        self.on_booked = on_booked

    def book_slot(
        self,
        db: Session,
        slot_id: int,
        draft: AppointmentDraft,
        now: datetime | None = None,
    ) -> Appointment:
        now = now or self.clock.now()
        earliest_start = now + self.settings.min_booking_lead

        try:
            if slot_store.get_patient(db, draft.patient_id) is None:
                raise PatientNotFound('Patient not found.')

            claimed = slot_store.claim_slot(db, slot_id, earliest_start)
            if claimed != 1:
                db.rollback()
                raise self._claim_failure(db, slot_id, earliest_start)

            slot = slot_store.get_slot(db, slot_id)
            appointment = Appointment(
                patient_id=draft.patient_id,
                doctor_id=slot.owner_id,
                slot_id=slot.id,
                start_at=slot.start_at,
                end_at=slot.end_at,
                status=draft.status,
                reminder_sent=False,
                reminder_time=slot.start_at - self.settings.reminder_lead,
            )
            db.add(appointment)
            db.commit()
            db.refresh(appointment)
        except SQLAlchemyError as exc:
            db.rollback()
            appointment = self._reconcile(db, slot_id, draft)
            if appointment is None:
                raise StorageUnavailable('Booking outcome unknown; slot was not confirmed.') from exc
            logger.warning('Booking of slot %s committed despite a storage error', slot_id)

        logger.info('Slot %s booked as appointment %s', slot_id, appointment.id)
        self._notify(appointment.id)
        return appointment

    def _claim_failure(self, db: Session, slot_id: int, earliest_start: datetime) -> Exception:
        slot = slot_store.get_slot(db, slot_id)
        if slot is None:
            return SlotNotFound('Slot not found.')
        if slot.is_booked:
            return SlotAlreadyBooked('Slot no longer available. Please pick another slot.')
        if slot.is_archived:
            return SlotUnavailable('Slot is no longer offered.')
        if slot.start_at <= earliest_start:
            return SlotUnavailable('Slot start time must be in the future.')
        return SlotAlreadyBooked('Slot no longer available. Please pick another slot.')

    def _reconcile(self, db: Session, slot_id: int, draft: AppointmentDraft) -> Appointment | None:
        """Re-read after a failed write to learn whether it actually landed."""
        try:
            return db.query(Appointment).filter(
                Appointment.slot_id == slot_id,
                Appointment.patient_id == draft.patient_id,
                Appointment.status == draft.status,
            ).order_by(Appointment.id.desc()).first()
        except SQLAlchemyError:
            db.rollback()
            logger.exception('Could not reconcile booking of slot %s', slot_id)
            return None

    def _notify(self, appointment_id: int) -> None:
        if self.on_booked is None:
            return
        try:
            self.on_booked(appointment_id)
        except Exception:
            logger.exception('Booking confirmation hook failed for appointment %s', appointment_id)

    def list_available(
        self,
        db: Session,
        local_date: date,
        mode: AppointmentMode,
        now: datetime | None = None,
    ) -> list[Slot]:
        """Unbooked, unarchived, future slots on an open date."""
        now = now or self.clock.now()
        mode = AppointmentMode(mode)

        if self.clock.day_of_week(local_date) == self.settings.weekly_closure_day:
            return []

        with slot_store.storage_errors(db):
            owner_id = slot_store.get_provider(db).id
            if slot_store.is_day_off(db, owner_id, local_date):
                return []

            day_start, day_end = self.clock.day_bounds(local_date)
            return slot_store.list_unbooked_slots(db, owner_id, day_start, day_end, mode, now)
