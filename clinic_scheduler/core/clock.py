"""Business-local wall clock.

Every slot computation goes through ``TimeZoneClock`` so that results do not
depend on the host timezone. Instants are always timezone-aware UTC datetimes.
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clinic_scheduler.core.errors import InvalidTimeZone


class TimeZoneClock:
    def __init__(self, tz_name: str) -> None:
        try:
            self.tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise InvalidTimeZone(f"Unknown timezone: {tz_name!r}") from exc
        self.tz_name = tz_name

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.to_local_date(self.now())

    def to_absolute(self, local_date: date, local_time: time) -> datetime:
        """Resolve a business-local wall-clock value to a UTC instant."""
        return datetime.combine(local_date, local_time, tzinfo=self.tz).astimezone(timezone.utc)

    def to_local(self, instant: datetime) -> datetime:
        return as_utc(instant).astimezone(self.tz)

    def to_local_date(self, instant: datetime) -> date:
        return self.to_local(instant).date()

    def day_of_week(self, local_date: date) -> int:
        """0 = Monday ... 6 = Sunday."""
        return local_date.weekday()

    def day_bounds(self, local_date: date) -> tuple[datetime, datetime]:
        """UTC instants for the start of ``local_date`` and the start of the next day."""
        start = self.to_absolute(local_date, time.min)
        end = self.to_absolute(local_date + timedelta(days=1), time.min)
        return start, end

    def format_time(self, instant: datetime) -> str:
        return self.to_local(instant).strftime('%I:%M %p').lstrip('0')

    def format_date(self, instant: datetime) -> str:
        return self.to_local(instant).strftime('%d %b %Y')

    def format_slot_label(self, start_at: datetime, end_at: datetime) -> str:
        return f'{self.format_time(start_at)} - {self.format_time(end_at)}'


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def iterate_dates(start_date: date, end_date: date):
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)
