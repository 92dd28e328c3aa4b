from datetime import date, time, timedelta

import pytest

from clinic_scheduler.models.appointment import Appointment
from clinic_scheduler.models.slot import AppointmentMode, Slot
from clinic_scheduler.services.booking import AppointmentDraft, BookingCoordinator
from clinic_scheduler.services.confirmations import send_booking_confirmation
from clinic_scheduler.services.notifications import NotificationChannels

MONDAY = date(2025, 11, 24)


@pytest.fixture
def booked(db, provider, patient, clock, settings) -> Appointment:
    start_at = clock.to_absolute(MONDAY, time(14, 0))
    slot = Slot(owner_id=provider.id, start_at=start_at, end_at=start_at + timedelta(minutes=40), mode=AppointmentMode.ONLINE)
    db.add(slot)
    db.commit()
    return BookingCoordinator(clock, settings).book_slot(
        db, slot.id, AppointmentDraft(patient_id=patient.id), now=start_at - timedelta(days=1)
    )


def reminder_sent(db, appointment_id):
    db.expire_all()
    return db.get(Appointment, appointment_id).reminder_sent


def test_early_booking_gets_a_plain_confirmation(session_factory, db, booked, clock, make_sender) -> None:
    sender = make_sender()
    now = booked.start_at - timedelta(days=1)

    template = send_booking_confirmation(booked.id, session_factory, NotificationChannels(primary=sender), clock, now=now)

    assert template == 'booking_confirmation'
    assert [(name, template_id) for name, template_id, _ in sender.sent] == [
        ('Asha', 'booking_confirmation'),
        ('Dr. Rao', 'booking_confirmation'),
    ]
    assert reminder_sent(db, booked.id) is False


def test_booking_inside_reminder_window_replaces_the_reminder(session_factory, db, booked, clock, make_sender) -> None:
    sender = make_sender()
    now = booked.start_at - timedelta(minutes=20)

    template = send_booking_confirmation(booked.id, session_factory, NotificationChannels(primary=sender), clock, now=now)

    assert template == 'last_minute_confirmation'
    assert sender.sent[0][:2] == ('Asha', 'last_minute_confirmation')
    assert reminder_sent(db, booked.id) is True


def test_failed_last_minute_confirmation_leaves_reminder_pending(session_factory, db, booked, clock, make_sender) -> None:
    sender = make_sender(fail_for={'Asha'})
    now = booked.start_at - timedelta(minutes=20)

    send_booking_confirmation(booked.id, session_factory, NotificationChannels(primary=sender), clock, now=now)

    assert reminder_sent(db, booked.id) is False


def test_nothing_is_sent_for_started_or_missing_appointments(session_factory, db, booked, clock, make_sender) -> None:
    sender = make_sender()
    channels = NotificationChannels(primary=sender)

    assert send_booking_confirmation(booked.id, session_factory, channels, clock, now=booked.start_at) is None
    assert send_booking_confirmation(999, session_factory, channels, clock, now=booked.start_at) is None
    assert sender.sent == []
