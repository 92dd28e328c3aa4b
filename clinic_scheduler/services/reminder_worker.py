"""Reminder delivery.

``ReminderWorker.process`` handles one job synchronously: it re-reads the
appointment, notifies the patient on the primary channel, notifies the
patient's other channels and the provider best-effort, and then marks the
reminder sent with a conditional update. Only the patient's primary outcome
decides whether the reminder counts as delivered.

``ReminderWorkerPool`` runs a fixed number of consumers over the queue, each
job in a thread with a timeout.
"""

import asyncio
import enum
import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.settings import SchedulerSettings
from clinic_scheduler.models.appointment import AppointmentStatus
from clinic_scheduler.models.user import User
from clinic_scheduler.services import appointment_store
from clinic_scheduler.services.notifications import (
    TEMPLATE_REMINDER,
    NotificationChannels,
    NotificationSender,
    Recipient,
    SendResult,
    build_message_variables,
)
from clinic_scheduler.services.reminder_queue import ReminderAttempts, ReminderJob, ReminderQueue

logger = logging.getLogger(__name__)


class JobOutcome(str, enum.Enum):
    SENT = 'sent'
    DUPLICATE = 'duplicate'
    SKIPPED = 'skipped'
    NOT_FOUND = 'not_found'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'


COMPLETED_OUTCOMES = {JobOutcome.SENT, JobOutcome.DUPLICATE, JobOutcome.SKIPPED}


def recipient_from_user(user: User | None, fallback_name: str) -> Recipient:
    if user is None:
        return Recipient(name=fallback_name)
    return Recipient(name=user.name or fallback_name, phone=user.phone, email=user.email)


def safe_send(
    sender: NotificationSender,
    recipient: Recipient,
    template_id: str,
    variables: dict[str, str],
) -> SendResult:
    try:
        return sender.send(recipient, template_id, variables)
    except Exception as exc:
        logger.warning('%s sender raised for %s', sender.channel, recipient.name, exc_info=True)
        return SendResult(success=False, error=f'{type(exc).__name__}: {exc}')


class ReminderWorker:
    def __init__(
        self,
        session_factory: sessionmaker,
        channels: NotificationChannels,
        clock: TimeZoneClock,
    ) -> None:
        self.session_factory = session_factory
        self.channels = channels
        self.clock = clock

    def process(self, job: ReminderJob) -> JobOutcome:
        appointment_id = job.appointment_id
        started = time.monotonic()
        db: Session = self.session_factory()
        try:
            try:
                appointment = appointment_store.get_appointment(db, appointment_id)
            except SQLAlchemyError:
                db.rollback()
                logger.warning('Could not load appointment %s for reminder', appointment_id, exc_info=True)
                return JobOutcome.FAILED

            if appointment is None:
                logger.error('Appointment not found for reminder: %s', appointment_id)
                return JobOutcome.NOT_FOUND
            if appointment.reminder_sent:
                return JobOutcome.SKIPPED
            if appointment.status != AppointmentStatus.CONFIRMED:
                return JobOutcome.SKIPPED

            patient = recipient_from_user(appointment.patient, 'Patient')
            provider = recipient_from_user(appointment.doctor, 'Doctor')
            start_at = appointment.slot.start_at if appointment.slot else appointment.start_at
            end_at = appointment.slot.end_at if appointment.slot else appointment.end_at

            delivered = self._notify_patient(appointment_id, patient, start_at, end_at)
            self._notify_provider(appointment_id, provider, start_at, end_at)

            if not delivered:
                return JobOutcome.FAILED

            outcome = self._mark_sent(db, appointment_id)
            if outcome is JobOutcome.SENT:
                logger.info(
                    'Reminder completed: %s (%.0fms)',
                    appointment_id,
                    (time.monotonic() - started) * 1000,
                )
            return outcome
        finally:
            db.close()

    def _notify_patient(self, appointment_id, patient: Recipient, start_at, end_at) -> bool:
        variables = build_message_variables(self.clock, patient.name, start_at, end_at)
        primary = self.channels.primary

        if primary.address_for(patient) is None:
            # Nothing to deliver to; counting it as done stops endless retries.
            logger.info('Patient has no %s address for appointment %s', primary.channel, appointment_id)
            delivered = True
        else:
            result = safe_send(primary, patient, TEMPLATE_REMINDER, variables)
            delivered = result.success
            if not delivered:
                logger.warning(
                    'Patient %s reminder failed for appointment %s: %s',
                    primary.channel,
                    appointment_id,
                    result.error,
                )

        for sender in self.channels.secondary:
            if sender.address_for(patient) is None:
                continue
            result = safe_send(sender, patient, TEMPLATE_REMINDER, variables)
            if not result.success:
                logger.warning(
                    'Patient %s reminder failed for appointment %s: %s',
                    sender.channel,
                    appointment_id,
                    result.error,
                )

        return delivered

    def _notify_provider(self, appointment_id, provider: Recipient, start_at, end_at) -> None:
        variables = build_message_variables(self.clock, provider.name, start_at, end_at)
        for sender in (self.channels.primary, *self.channels.secondary):
            if sender.address_for(provider) is None:
                continue
            result = safe_send(sender, provider, TEMPLATE_REMINDER, variables)
            if not result.success:
                logger.warning(
                    'Provider %s reminder failed for appointment %s: %s',
                    sender.channel,
                    appointment_id,
                    result.error,
                )

    def _mark_sent(self, db: Session, appointment_id: int) -> JobOutcome:
        try:
            updated = appointment_store.mark_reminder_sent(db, appointment_id)
        except SQLAlchemyError:
            db.rollback()
            logger.warning('Marking reminder %s sent had an unknown outcome', appointment_id, exc_info=True)
            return self._reconcile(db, appointment_id)

        if updated == 0:
            logger.info('Reminder already sent (duplicate prevented): %s', appointment_id)
            return JobOutcome.DUPLICATE
        return JobOutcome.SENT

    def _reconcile(self, db: Session, appointment_id: int) -> JobOutcome:
        try:
            sent = appointment_store.reminder_sent_state(db, appointment_id)
        except SQLAlchemyError:
            db.rollback()
            logger.warning('Could not re-read reminder state for %s', appointment_id, exc_info=True)
            return JobOutcome.FAILED
        if sent:
            return JobOutcome.SENT
        return JobOutcome.FAILED


class ReminderWorkerPool:
    def __init__(
        self,
        queue: ReminderQueue,
        worker: ReminderWorker,
        settings: SchedulerSettings,
        attempts: ReminderAttempts | None = None,
    ) -> None:
        self.queue = queue
        self.worker = worker
        self.settings = settings
        self.attempts = attempts or ReminderAttempts(settings.max_attempts)

    async def run_job(self, job: ReminderJob) -> JobOutcome:
        try:
            outcome = await asyncio.wait_for(
                asyncio.to_thread(self.worker.process, job),
                timeout=self.settings.job_timeout_seconds,
            )
        except asyncio.TimeoutError:
            # The thread keeps running; its conditional update makes a late finish harmless.
            logger.warning(
                'Reminder job %s timed out after %ss',
                job.appointment_id,
                self.settings.job_timeout_seconds,
            )
            outcome = JobOutcome.TIMED_OUT
        except Exception:
            logger.exception('Error processing reminder job %s', job.appointment_id)
            outcome = JobOutcome.FAILED

        if outcome in COMPLETED_OUTCOMES:
            self.queue.complete(job.appointment_id)
            self.attempts.clear(job.appointment_id)
        else:
            self.queue.fail(job.appointment_id)
            self.attempts.record_failure(job.appointment_id)
        return outcome

    async def drain(self) -> list[JobOutcome]:
        """Process everything currently queued, at most ``worker_concurrency`` at a time."""
        semaphore = asyncio.Semaphore(self.settings.worker_concurrency)

        async def _bounded(job: ReminderJob) -> JobOutcome:
            async with semaphore:
                return await self.run_job(job)

        jobs = []
        while True:
            job = self.queue.dequeue()
            if job is None:
                break
            jobs.append(job)
        return list(await asyncio.gather(*(_bounded(job) for job in jobs)))

    async def _consume(self, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            job = self.queue.dequeue()
            if job is None:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.settings.worker_idle_seconds)
                except asyncio.TimeoutError:
                    pass
                continue
            await self.run_job(job)

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info('Reminder worker pool started (%s workers)', self.settings.worker_concurrency)
        await asyncio.gather(
            *(self._consume(stop_event) for _ in range(self.settings.worker_concurrency))
        )
        logger.info('Reminder worker pool stopped')
