from dataclasses import dataclass
from datetime import timedelta

from clinic_scheduler.core import config


@dataclass(frozen=True)
class SchedulerSettings:
    timezone: str = 'Asia/Kolkata'
    weekly_closure_day: int = 6
    min_booking_lead_seconds: int = 60
    reminder_lead_minutes: int = 60
    poll_interval_minutes: int = 10
    worker_concurrency: int = 5
    job_timeout_seconds: float = 30.0
    worker_idle_seconds: float = 2.0
    max_attempts: int = 0

    @property
    def reminder_lead(self) -> timedelta:
        return timedelta(minutes=self.reminder_lead_minutes)

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(minutes=self.poll_interval_minutes)

    @property
    def min_booking_lead(self) -> timedelta:
        return timedelta(seconds=self.min_booking_lead_seconds)

    @classmethod
    def from_config(cls) -> 'SchedulerSettings':
        return cls(
            timezone=config.BUSINESS_TIMEZONE,
            weekly_closure_day=config.WEEKLY_CLOSURE_DAY,
            min_booking_lead_seconds=config.MIN_BOOKING_LEAD_SECONDS,
            reminder_lead_minutes=config.REMINDER_LEAD_MINUTES,
            poll_interval_minutes=config.REMINDER_POLL_INTERVAL_MINUTES,
            worker_concurrency=config.REMINDER_WORKER_CONCURRENCY,
            job_timeout_seconds=config.REMINDER_JOB_TIMEOUT_SECONDS,
            worker_idle_seconds=config.REMINDER_WORKER_IDLE_SECONDS,
            max_attempts=config.REMINDER_MAX_ATTEMPTS,
        )
