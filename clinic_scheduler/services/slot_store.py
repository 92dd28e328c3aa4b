"""Persistence helpers for slots and day-offs.

Booking state changes go through conditional updates (``claim_slot``) so that
concurrent callers in any number of processes can tell whether their write
took effect from the affected-row count.
"""

from contextlib import contextmanager
from datetime import date, datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinic_scheduler.core.errors import ConfigurationError, DayOffNotFound, StorageUnavailable
from clinic_scheduler.models.appointment import Appointment, AppointmentStatus
from clinic_scheduler.models.slot import AppointmentMode, DayOff, Slot
from clinic_scheduler.models.user import ROLE_ADMIN, ROLE_PATIENT, User

INSERT_CHUNK_SIZE = 500


@contextmanager
def storage_errors(db: Session):
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageUnavailable('Database unavailable.') from exc


def get_provider(db: Session) -> User:
    """The clinic has a single provider; every slot belongs to them."""
    provider = db.query(User).filter(User.role == ROLE_ADMIN).order_by(User.id.asc()).first()
    if provider is None:
        raise ConfigurationError('No provider found in database. Seed the provider first.')
    return provider


def get_patient(db: Session, patient_id: int) -> User | None:
    return db.query(User).filter(User.id == patient_id, User.role == ROLE_PATIENT).first()


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == 'postgresql':
        from sqlalchemy.dialects.postgresql import insert
        return insert
    if dialect == 'sqlite':
        from sqlalchemy.dialects.sqlite import insert
        return insert
    return None


def insert_slots_skip_duplicates(db: Session, rows: list[dict]) -> int:
    """Insert slot rows, ignoring ones that clash with (owner_id, start_at).

    Runs as one transaction and returns the number of rows actually created.
    """
    if not rows:
        return 0

    insert = _dialect_insert(db)
    created = 0
    with storage_errors(db):
        if insert is None:
            created = _insert_missing_slots(db, rows)
        else:
            for offset in range(0, len(rows), INSERT_CHUNK_SIZE):
                chunk = rows[offset:offset + INSERT_CHUNK_SIZE]
                statement = insert(Slot).values(chunk).on_conflict_do_nothing(
                    index_elements=['owner_id', 'start_at'],
                )
                result = db.execute(statement)
                created += max(result.rowcount or 0, 0)
        db.commit()
    return created


def _insert_missing_slots(db: Session, rows: list[dict]) -> int:
    owner_ids = {row['owner_id'] for row in rows}
    starts = [row['start_at'] for row in rows]
    existing = {
        (owner_id, start_at)
        for owner_id, start_at in db.query(Slot.owner_id, Slot.start_at).filter(
            Slot.owner_id.in_(owner_ids),
            Slot.start_at >= min(starts),
            Slot.start_at <= max(starts),
        )
    }
    missing = [row for row in rows if (row['owner_id'], row['start_at']) not in existing]
    db.add_all(Slot(**row) for row in missing)
    db.flush()
    return len(missing)


def existing_slot_starts(
    db: Session,
    owner_id: int,
    range_start: datetime,
    range_end: datetime,
) -> dict[AppointmentMode, set[datetime]]:
    existing: dict[AppointmentMode, set[datetime]] = {}
    rows = db.query(Slot.start_at, Slot.mode).filter(
        Slot.owner_id == owner_id,
        Slot.start_at >= range_start,
        Slot.start_at < range_end,
    ).all()
    for start_at, mode in rows:
        existing.setdefault(AppointmentMode(mode), set()).add(start_at)
    return existing


def get_slot(db: Session, slot_id: int) -> Slot | None:
    return db.query(Slot).filter(Slot.id == slot_id).first()


def claim_slot(db: Session, slot_id: int, now: datetime) -> int:
    """Flip ``is_booked`` only where the slot is still free and bookable.

    Does not commit. Returns the affected-row count: 1 means the caller owns
    the slot, 0 means its assumption did not hold.
    """
    return db.query(Slot).filter(
        Slot.id == slot_id,
        Slot.is_booked.is_(False),
        Slot.is_archived.is_(False),
        Slot.start_at > now,
    ).update({Slot.is_booked: True}, synchronize_session=False)


def list_unbooked_slots(
    db: Session,
    owner_id: int,
    range_start: datetime,
    range_end: datetime,
    mode: AppointmentMode,
    now: datetime,
) -> list[Slot]:
    return db.query(Slot).filter(
        Slot.owner_id == owner_id,
        Slot.mode == mode,
        Slot.is_booked.is_(False),
        Slot.is_archived.is_(False),
        Slot.start_at >= range_start,
        Slot.start_at < range_end,
        Slot.start_at > now,
    ).order_by(Slot.start_at.asc()).all()


def list_slots_with_bookings(
    db: Session,
    owner_id: int,
    range_start: datetime | None = None,
    range_end: datetime | None = None,
    mode: AppointmentMode | None = None,
) -> list[tuple[Slot, Appointment | None]]:
    query = db.query(Slot, Appointment).outerjoin(
        Appointment,
        (Appointment.slot_id == Slot.id) & (Appointment.status == AppointmentStatus.CONFIRMED),
    ).filter(Slot.owner_id == owner_id)

    if range_start is not None:
        query = query.filter(Slot.start_at >= range_start)
    if range_end is not None:
        query = query.filter(Slot.start_at < range_end)
    if mode is not None:
        query = query.filter(Slot.mode == mode)

    seen: set[int] = set()
    results: list[tuple[Slot, Appointment | None]] = []
    for slot, appointment in query.order_by(Slot.start_at.asc(), Appointment.id.asc()).all():
        if slot.id in seen:
            continue
        seen.add(slot.id)
        results.append((slot, appointment))
    return results


def slot_date_range(db: Session, owner_id: int) -> tuple[datetime | None, datetime | None]:
    return db.query(func.min(Slot.start_at), func.max(Slot.start_at)).filter(
        Slot.owner_id == owner_id,
        Slot.is_archived.is_(False),
    ).one()


def delete_unbooked_slots_between(
    db: Session,
    owner_id: int,
    range_start: datetime,
    range_end: datetime,
) -> int:
    return db.query(Slot).filter(
        Slot.owner_id == owner_id,
        Slot.is_booked.is_(False),
        Slot.start_at >= range_start,
        Slot.start_at < range_end,
    ).delete(synchronize_session=False)


def day_off_dates(db: Session, owner_id: int, start_date: date, end_date: date) -> set[date]:
    rows = db.query(DayOff.date).filter(
        DayOff.owner_id == owner_id,
        DayOff.date >= start_date,
        DayOff.date <= end_date,
    ).all()
    return {row[0] for row in rows}


def is_day_off(db: Session, owner_id: int, local_date: date) -> bool:
    return db.query(DayOff.id).filter(
        DayOff.owner_id == owner_id,
        DayOff.date == local_date,
    ).first() is not None


def upsert_day_off(db: Session, owner_id: int, local_date: date, reason: str | None) -> DayOff:
    day_off = db.query(DayOff).filter(
        DayOff.owner_id == owner_id,
        DayOff.date == local_date,
    ).first()
    if day_off is None:
        day_off = DayOff(owner_id=owner_id, date=local_date, reason=reason)
        db.add(day_off)
    else:
        day_off.reason = reason
    db.flush()
    return day_off


def delete_day_off(db: Session, day_off_id: int) -> None:
    with storage_errors(db):
        deleted = db.query(DayOff).filter(DayOff.id == day_off_id).delete(synchronize_session=False)
        if not deleted:
            raise DayOffNotFound('Day off not found.')
        db.commit()


def list_day_offs(db: Session, owner_id: int) -> list[DayOff]:
    return db.query(DayOff).filter(DayOff.owner_id == owner_id).order_by(DayOff.date.asc()).all()
