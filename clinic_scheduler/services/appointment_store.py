from datetime import datetime

from sqlalchemy.orm import Session, joinedload

from clinic_scheduler.models.appointment import Appointment, AppointmentStatus


def get_appointment(db: Session, appointment_id: int) -> Appointment | None:
    return db.query(Appointment).options(
        joinedload(Appointment.patient),
        joinedload(Appointment.doctor),
        joinedload(Appointment.slot),
    ).filter(Appointment.id == appointment_id).first()


def find_due_reminders(
    db: Session,
    window_start: datetime,
    window_end: datetime,
) -> list[tuple[int, datetime]]:
    """Confirmed, unsent appointments whose reminder time falls in the window (inclusive)."""
    rows = db.query(Appointment.id, Appointment.reminder_time).filter(
        Appointment.status == AppointmentStatus.CONFIRMED,
        Appointment.reminder_sent.is_(False),
        Appointment.reminder_time.is_not(None),
        Appointment.reminder_time >= window_start,
        Appointment.reminder_time <= window_end,
    ).order_by(Appointment.reminder_time.asc(), Appointment.id.asc()).all()
    return [(appointment_id, reminder_time) for appointment_id, reminder_time in rows]


def mark_reminder_sent(db: Session, appointment_id: int) -> int:
    """Set ``reminder_sent`` only where it is still false. Commits.

    Zero affected rows means someone else already marked it.
    """
    updated = db.query(Appointment).filter(
        Appointment.id == appointment_id,
        Appointment.reminder_sent.is_(False),
    ).update({Appointment.reminder_sent: True}, synchronize_session=False)
    db.commit()
    return updated


def reminder_sent_state(db: Session, appointment_id: int) -> bool | None:
    row = db.query(Appointment.reminder_sent).filter(Appointment.id == appointment_id).first()
    if row is None:
        return None
    return bool(row[0])


def has_active_appointment_between(
    db: Session,
    doctor_id: int,
    range_start: datetime,
    range_end: datetime,
) -> bool:
    return db.query(Appointment.id).filter(
        Appointment.doctor_id == doctor_id,
        Appointment.status.in_([AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED]),
        Appointment.start_at >= range_start,
        Appointment.start_at < range_end,
    ).first() is not None
