"""Fixed daily slot templates, keyed by appointment mode.

Each template is a business-local (start, end) wall-clock pair. Slots last
40 minutes; in-person consultations fill the morning (09:00-13:50) and
online ones the afternoon (14:00-19:40). Windows of different modes never
share a start instant because slots are unique per (owner, start).
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from clinic_scheduler.models.slot import AppointmentMode

SLOT_DURATION_MINUTES = 40


@dataclass(frozen=True)
class SlotTemplate:
    start: time
    end: time


def _window(start: str) -> SlotTemplate:
    begins = datetime.combine(date.min, time.fromisoformat(start))
    return SlotTemplate(begins.time(), (begins + timedelta(minutes=SLOT_DURATION_MINUTES)).time())


SLOT_TEMPLATES: dict[AppointmentMode, tuple[SlotTemplate, ...]] = {
    AppointmentMode.IN_PERSON: (
        _window('09:00'),
        _window('09:50'),
        _window('10:40'),
        _window('11:30'),
        _window('12:20'),
        _window('13:10'),
    ),
    AppointmentMode.ONLINE: (
        _window('14:00'),
        _window('15:00'),
        _window('16:00'),
        _window('17:00'),
        _window('18:00'),
        _window('19:00'),
    ),
}


def templates_for(mode: AppointmentMode) -> tuple[SlotTemplate, ...]:
    return SLOT_TEMPLATES[AppointmentMode(mode)]


def describe_window(mode: AppointmentMode) -> str:
    templates = templates_for(mode)
    return f'{templates[0].start:%H:%M}-{templates[-1].end:%H:%M}'
