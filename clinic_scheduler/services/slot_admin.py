"""Administrator operations on the provider calendar: day-offs and slot listings."""

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.orm import Session

from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.errors import DayOffConflict, InvalidRange
from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.slot import AppointmentMode, DayOff, Slot
from clinic_scheduler.services import appointment_store, slot_store

logger = logging.getLogger(__name__)


@dataclass
class SlotDateRange:
    has_slots: bool
    earliest_date: date | None = None
    latest_date: date | None = None


def add_day_off(db: Session, clock: TimeZoneClock, local_date: date, reason: str | None = None) -> DayOff:
    """Close ``local_date`` and clear its unbooked slots.

    Refused while a pending or confirmed appointment starts that day.
    """
    with slot_store.storage_errors(db):
        provider = slot_store.get_provider(db)
        day_start, day_end = clock.day_bounds(local_date)

        if appointment_store.has_active_appointment_between(db, provider.id, day_start, day_end):
            raise DayOffConflict(
                'Cannot mark this day off because there is a confirmed or pending appointment on this date.'
            )

        day_off = slot_store.upsert_day_off(db, provider.id, local_date, reason)
        removed = slot_store.delete_unbooked_slots_between(db, provider.id, day_start, day_end)
        db.commit()
        db.refresh(day_off)

    logger.info('Day off set for %s (removed %s unbooked slots)', local_date, removed)
    return day_off


def remove_day_off(db: Session, day_off_id: int) -> None:
    slot_store.delete_day_off(db, day_off_id)
    logger.info('Day off %s removed', day_off_id)


def list_day_offs(db: Session) -> list[DayOff]:
    with slot_store.storage_errors(db):
        provider = slot_store.get_provider(db)
        return slot_store.list_day_offs(db, provider.id)


def list_admin_slots(
    db: Session,
    clock: TimeZoneClock,
    on_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    mode: AppointmentMode | None = None,
) -> list[tuple[Slot, Appointment | None]]:
    range_start = range_end = None

    if on_date is not None:
        range_start, range_end = clock.day_bounds(on_date)
    elif start_date is not None and end_date is not None:
        if end_date < start_date:
            raise InvalidRange('endDate cannot be before startDate.')
        range_start, _ = clock.day_bounds(start_date)
        _, range_end = clock.day_bounds(end_date)

    with slot_store.storage_errors(db):
        provider = slot_store.get_provider(db)
        return slot_store.list_slots_with_bookings(db, provider.id, range_start, range_end, mode)


def get_slot_date_range(db: Session, clock: TimeZoneClock) -> SlotDateRange:
    with slot_store.storage_errors(db):
        provider = slot_store.get_provider(db)
        earliest, latest = slot_store.slot_date_range(db, provider.id)

    if earliest is None or latest is None:
        return SlotDateRange(has_slots=False)

    return SlotDateRange(
        has_slots=True,
        earliest_date=clock.to_local_date(earliest),
        latest_date=clock.to_local_date(latest),
    )
