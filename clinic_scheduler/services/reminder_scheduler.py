"""Periodic scan for appointments whose reminder is due.

Each scan looks back one poll interval from now (rounded down to the minute)
and enqueues every confirmed appointment with ``reminder_sent = false`` whose
``reminder_time`` falls in that window. Scans are single-flight: a tick that
fires while the previous scan is still delivering is skipped, not queued.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.orm import Session, sessionmaker

from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.errors import StorageUnavailable
from clinic_scheduler.core.settings import SchedulerSettings
from clinic_scheduler.services import appointment_store, slot_store
from clinic_scheduler.services.reminder_queue import ReminderAttempts, ReminderJob, ReminderQueue

logger = logging.getLogger(__name__)

DELIVERY_POLL_SECONDS = 0.05


@dataclass
class ScanResult:
    window_start: datetime
    window_end: datetime
    due_ids: list[int] = field(default_factory=list)
    enqueued_ids: list[int] = field(default_factory=list)
    abandoned_ids: list[int] = field(default_factory=list)


def due_window(now: datetime, poll_interval: timedelta) -> tuple[datetime, datetime]:
    window_end = now.replace(second=0, microsecond=0)
    return window_end - poll_interval, window_end


class ReminderScheduler:
    def __init__(
        self,
        session_factory: sessionmaker,
        queue: ReminderQueue,
        settings: SchedulerSettings,
        clock: TimeZoneClock,
        attempts: ReminderAttempts | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.queue = queue
        self.settings = settings
        self.clock = clock
        self.attempts = attempts or ReminderAttempts(settings.max_attempts)
        self._scan_lock = asyncio.Lock()
        self.skipped_ticks = 0

    def scan(self, now: datetime | None = None) -> ScanResult:
        now = now or self.clock.now()
        window_start, window_end = due_window(now, self.settings.poll_interval)
        result = ScanResult(window_start=window_start, window_end=window_end)

        db: Session = self.session_factory()
        try:
            with slot_store.storage_errors(db):
                due = appointment_store.find_due_reminders(db, window_start, window_end)
        finally:
            db.close()

        for appointment_id, reminder_time in due:
            result.due_ids.append(appointment_id)
            if self.attempts.exhausted(appointment_id):
                result.abandoned_ids.append(appointment_id)
                continue
            job = ReminderJob(appointment_id=appointment_id, scheduled_at=reminder_time or now)
            if self.queue.enqueue(job):
                result.enqueued_ids.append(appointment_id)

        if result.abandoned_ids:
            logger.warning(
                'Reminders abandoned after %s failed attempts: %s',
                self.settings.max_attempts,
                result.abandoned_ids,
            )
        if result.enqueued_ids:
            logger.info(
                'Enqueued %s reminder job(s) for window %s..%s (queue size: %s)',
                len(result.enqueued_ids),
                window_start.isoformat(),
                window_end.isoformat(),
                self.queue.size(),
            )
        return result

    @property
    def is_scanning(self) -> bool:
        return self._scan_lock.locked()

    async def tick(self, now: datetime | None = None) -> ScanResult | None:
        """One single-flight scan: enqueue due jobs, then wait for their delivery."""
        if self._scan_lock.locked():
            self.skipped_ticks += 1
            logger.info('Previous reminder scan still delivering; skipping this tick')
            return None

        async with self._scan_lock:
            try:
                result = await asyncio.to_thread(self.scan, now)
            except StorageUnavailable:
                logger.warning('Reminder scan skipped: database unavailable', exc_info=True)
                return None

            await self._wait_for_delivery(result.enqueued_ids)
            return result

    async def _wait_for_delivery(self, appointment_ids: list[int]) -> None:
        pending = list(appointment_ids)
        while pending:
            pending = [appointment_id for appointment_id in pending if self.queue.has_job(appointment_id)]
            if pending:
                await asyncio.sleep(DELIVERY_POLL_SECONDS)

    async def run(self, stop_event: asyncio.Event) -> None:
        interval = self.settings.poll_interval.total_seconds()
        logger.info('Reminder scheduler started (every %s minutes)', self.settings.poll_interval_minutes)
        ticks: set[asyncio.Task] = set()

        try:
            while not stop_event.is_set():
                task = asyncio.create_task(self.tick())
                ticks.add(task)
                task.add_done_callback(ticks.discard)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            for task in list(ticks):
                task.cancel()
            if ticks:
                await asyncio.gather(*ticks, return_exceptions=True)
            logger.info('Reminder scheduler stopped')
