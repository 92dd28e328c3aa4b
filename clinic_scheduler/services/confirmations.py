"""Booking confirmation messages, sent after the booking has committed.

A booking made inside the reminder window gets one combined "last-minute"
confirmation instead; when that reaches the patient the reminder is marked
sent so the scheduler does not follow up with a second message.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.services import appointment_store
from clinic_scheduler.services.notifications import (
    TEMPLATE_BOOKING_CONFIRMATION,
    TEMPLATE_LAST_MINUTE_CONFIRMATION,
    NotificationChannels,
    build_message_variables,
)
from clinic_scheduler.services.reminder_worker import recipient_from_user, safe_send

logger = logging.getLogger(__name__)


def send_booking_confirmation(
    appointment_id: int,
    session_factory: sessionmaker,
    channels: NotificationChannels,
    clock: TimeZoneClock,
    now: datetime | None = None,
) -> str | None:
    """Returns the template used for the patient, or None when nothing was sent."""
    now = now or clock.now()
    db = session_factory()
    try:
        appointment = appointment_store.get_appointment(db, appointment_id)
        if appointment is None:
            logger.error('Cannot confirm missing appointment %s', appointment_id)
            return None
        if now >= appointment.start_at:
            logger.error('Appointment %s already started; no confirmation sent', appointment_id)
            return None

        last_minute = appointment.reminder_time is not None and appointment.reminder_time <= now
        template_id = TEMPLATE_LAST_MINUTE_CONFIRMATION if last_minute else TEMPLATE_BOOKING_CONFIRMATION

        patient = recipient_from_user(appointment.patient, 'Patient')
        variables = build_message_variables(clock, patient.name, appointment.start_at, appointment.end_at)

        primary_result = None
        for sender in (channels.primary, *channels.secondary):
            if sender.address_for(patient) is None:
                continue
            result = safe_send(sender, patient, template_id, variables)
            if sender is channels.primary:
                primary_result = result
            if not result.success:
                logger.warning(
                    'Booking confirmation via %s failed for appointment %s: %s',
                    sender.channel,
                    appointment_id,
                    result.error,
                )

        if last_minute and primary_result is not None and primary_result.success:
            if appointment_store.mark_reminder_sent(db, appointment_id) == 0:
                logger.info('Reminder already sent (duplicate prevented): %s', appointment_id)

        provider = recipient_from_user(appointment.doctor, 'Doctor')
        provider_variables = build_message_variables(clock, provider.name, appointment.start_at, appointment.end_at)
        for sender in (channels.primary, *channels.secondary):
            if sender.address_for(provider) is None:
                continue
            result = safe_send(sender, provider, TEMPLATE_BOOKING_CONFIRMATION, provider_variables)
            if not result.success:
                logger.warning(
                    'Provider booking notice via %s failed for appointment %s: %s',
                    sender.channel,
                    appointment_id,
                    result.error,
                )

        return template_id
    except SQLAlchemyError:
        db.rollback()
        logger.exception('Booking confirmation for appointment %s failed', appointment_id)
        return None
    finally:
        db.close()
