"""Wires the reminder queue, scheduler, and worker pool for one process."""

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.settings import SchedulerSettings
from clinic_scheduler.services.notifications import NotificationChannels
from clinic_scheduler.services.reminder_queue import ReminderAttempts, ReminderQueue
from clinic_scheduler.services.reminder_scheduler import ReminderScheduler
from clinic_scheduler.services.reminder_worker import ReminderWorker, ReminderWorkerPool

logger = logging.getLogger(__name__)


@dataclass
class ReminderStats:
    queue_size: int
    in_flight: int
    is_running: bool
    is_scanning: bool
    skipped_ticks: int


class ReminderService:
    def __init__(
        self,
        session_factory: sessionmaker,
        channels: NotificationChannels,
        settings: SchedulerSettings,
        clock: TimeZoneClock,
    ) -> None:
        self.settings = settings
        self.queue = ReminderQueue()
        self.attempts = ReminderAttempts(settings.max_attempts)
        self.scheduler = ReminderScheduler(session_factory, self.queue, settings, clock, self.attempts)
        self.worker = ReminderWorker(session_factory, channels, clock)
        self.pool = ReminderWorkerPool(self.queue, self.worker, settings, self.attempts)
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks) and not all(task.done() for task in self._tasks)

    def start(self) -> None:
        """Start the scheduler and the worker pool on the running event loop."""
        if self.is_running:
            return
        self._stop_event = asyncio.Event()
        self._tasks = [
            asyncio.create_task(self.pool.run(self._stop_event), name='reminder-workers'),
            asyncio.create_task(self.scheduler.run(self._stop_event), name='reminder-scheduler'),
        ]
        logger.info('Reminder service started')

    async def stop(self) -> None:
        if not self._tasks:
            return
        self._stop_event.set()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        # Deliver what is still queued; each job stays bounded by the job timeout.
        await self.pool.drain()
        self.queue.clear()
        logger.info('Reminder service stopped')

    def stats(self) -> ReminderStats:
        return ReminderStats(
            queue_size=self.queue.size(),
            in_flight=self.queue.in_flight_count(),
            is_running=self.is_running,
            is_scanning=self.scheduler.is_scanning,
            skipped_ticks=self.scheduler.skipped_ticks,
        )
