"""Expand daily templates into concrete slots over a date range.

Dates falling on the weekly closure day or on a provider day-off are skipped.
On "today" and on the requested start date, slots whose start is not strictly
after now are dropped so administrators can top up same-day slots; every
other date keeps its full template. Writes are a single duplicate-skipping
batch, so re-running a range is idempotent.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.orm import Session

from clinic_scheduler.core.clock import TimeZoneClock, iterate_dates
from clinic_scheduler.core.errors import InvalidRange
from clinic_scheduler.models.slot import AppointmentMode
from clinic_scheduler.services import slot_store
from clinic_scheduler.services.slot_templates import SLOT_TEMPLATES, SlotTemplate, describe_window

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')

PREVIEW_CLOSED = 'closed'
PREVIEW_OPEN = 'open'
MODE_WOULD_CREATE = 'would_create'
MODE_BLOCKED = 'blocked'
MODE_EXISTS = 'exists'


@dataclass(frozen=True)
class SlotDraft:
    start_at: datetime
    end_at: datetime
    mode: AppointmentMode


@dataclass
class GenerationResult:
    created_count: int
    planned_count: int


@dataclass
class ModePreview:
    mode: AppointmentMode
    count: int = 0
    past_count: int = 0
    existing_count: int = 0
    status: str = MODE_WOULD_CREATE
    reasons: list[str] = field(default_factory=list)


@dataclass
class DatePreview:
    date: date
    status: str
    reasons: list[str] = field(default_factory=list)
    modes: dict[AppointmentMode, ModePreview] = field(default_factory=dict)


@dataclass
class PreviewResult:
    dates: list[DatePreview]
    totals: dict[AppointmentMode, int]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def total_slots(self) -> int:
        return sum(self.totals.values())


def normalize_modes(modes) -> list[AppointmentMode]:
    normalized: list[AppointmentMode] = []
    for mode in modes:
        mode = AppointmentMode(mode)
        if mode not in normalized:
            normalized.append(mode)
    return normalized


def validate_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise InvalidRange('endDate cannot be before startDate.')


class SlotGenerator:
    def __init__(
        self,
        clock: TimeZoneClock,
        closure_day: int = 6,
        templates: dict[AppointmentMode, tuple[SlotTemplate, ...]] | None = None,
    ) -> None:
        self.clock = clock
        self.closure_day = closure_day
        self.templates = templates if templates is not None else SLOT_TEMPLATES

    def expand(self, local_date: date, mode: AppointmentMode) -> list[SlotDraft]:
        return [
            SlotDraft(
                start_at=self.clock.to_absolute(local_date, template.start),
                end_at=self.clock.to_absolute(local_date, template.end),
                mode=mode,
            )
            for template in self.templates[mode]
        ]

    def closure_reasons(self, local_date: date, day_offs: set[date]) -> list[str]:
        reasons = []
        if self.clock.day_of_week(local_date) == self.closure_day:
            reasons.append(f'{WEEKDAY_NAMES[self.closure_day]} (slots not created on {WEEKDAY_NAMES[self.closure_day]}s)')
        if local_date in day_offs:
            reasons.append('Day off')
        return reasons

    def _is_time_filtered(self, local_date: date, start_date: date, today: date) -> bool:
        return local_date == today or local_date == start_date

    def plan(
        self,
        start_date: date,
        end_date: date,
        modes,
        day_offs: set[date],
        now: datetime,
    ) -> list[SlotDraft]:
        """Compute the slots a range would produce, without touching storage."""
        validate_range(start_date, end_date)
        modes = normalize_modes(modes)
        today = self.clock.to_local_date(now)

        drafts: list[SlotDraft] = []
        for local_date in iterate_dates(start_date, end_date):
            if self.closure_reasons(local_date, day_offs):
                continue

            time_filtered = self._is_time_filtered(local_date, start_date, today)
            for mode in modes:
                for draft in self.expand(local_date, mode):
                    if time_filtered and draft.start_at <= now:
                        continue
                    drafts.append(draft)

        return drafts

    def generate(
        self,
        db: Session,
        start_date: date,
        end_date: date,
        modes,
        now: datetime | None = None,
    ) -> GenerationResult:
        validate_range(start_date, end_date)
        now = now or self.clock.now()

        with slot_store.storage_errors(db):
            owner_id = slot_store.get_provider(db).id
            day_offs = slot_store.day_off_dates(db, owner_id, start_date, end_date)

        drafts = self.plan(start_date, end_date, modes, day_offs, now)
        rows = [
            {
                'owner_id': owner_id,
                'start_at': draft.start_at,
                'end_at': draft.end_at,
                'mode': draft.mode,
                'is_booked': False,
                'is_archived': False,
            }
            for draft in drafts
        ]
        created_count = slot_store.insert_slots_skip_duplicates(db, rows)

        logger.info(
            'Generated slots for %s..%s: planned=%s created=%s',
            start_date,
            end_date,
            len(rows),
            created_count,
        )
        return GenerationResult(created_count=created_count, planned_count=len(rows))

    def preview(
        self,
        db: Session,
        start_date: date,
        end_date: date,
        modes,
        now: datetime | None = None,
    ) -> PreviewResult:
        validate_range(start_date, end_date)
        modes = normalize_modes(modes)
        now = now or self.clock.now()
        today = self.clock.to_local_date(now)

        with slot_store.storage_errors(db):
            owner_id = slot_store.get_provider(db).id
            day_offs = slot_store.day_off_dates(db, owner_id, start_date, end_date)
            range_start, _ = self.clock.day_bounds(start_date)
            _, range_end = self.clock.day_bounds(end_date)
            existing = slot_store.existing_slot_starts(db, owner_id, range_start, range_end)

        # Uniqueness is per (owner, start), whatever the mode.
        taken_starts = set().union(*existing.values())

        result = PreviewResult(dates=[], totals={mode: 0 for mode in modes})

        for local_date in iterate_dates(start_date, end_date):
            closed = self.closure_reasons(local_date, day_offs)
            if closed:
                result.dates.append(DatePreview(date=local_date, status=PREVIEW_CLOSED, reasons=closed))
                continue

            date_preview = DatePreview(date=local_date, status=PREVIEW_OPEN)
            time_filtered = self._is_time_filtered(local_date, start_date, today)
            is_today = local_date == today

            for mode in modes:
                mode_preview = self._preview_mode(
                    local_date,
                    mode,
                    taken_starts,
                    time_filtered,
                    now,
                )
                date_preview.modes[mode] = mode_preview
                result.totals[mode] += mode_preview.count

                template_count = len(self.templates[mode])
                if mode_preview.status == MODE_BLOCKED and is_today:
                    result.errors.append(
                        f'Today: All {mode.value} slots ({describe_window(mode)}) are in the past. '
                        f'Cannot create {mode.value} slots for today.'
                    )
                elif mode_preview.status == MODE_EXISTS:
                    result.warnings.append(f'{local_date}: {mode.value} slots already exist for this date')
                else:
                    if is_today and mode_preview.past_count:
                        result.errors.append(
                            f'Today: Only {mode_preview.count} of {template_count} {mode.value} slots '
                            'can be created (some are in the past)'
                        )
                    if mode_preview.existing_count:
                        result.warnings.append(
                            f'{local_date}: {mode_preview.existing_count} of {template_count} '
                            f'{mode.value} slots already exist for this date'
                        )

            result.dates.append(date_preview)

        return result

    def _preview_mode(
        self,
        local_date: date,
        mode: AppointmentMode,
        existing_starts: set[datetime],
        time_filtered: bool,
        now: datetime,
    ) -> ModePreview:
        preview = ModePreview(mode=mode)
        drafts = self.expand(local_date, mode)

        candidates = []
        for draft in drafts:
            if time_filtered and draft.start_at <= now:
                preview.reasons.append(f'Slot at {self.clock.format_time(draft.start_at)} is in the past')
                preview.past_count += 1
                continue
            candidates.append(draft)

        if drafts and not candidates:
            preview.status = MODE_BLOCKED
            preview.reasons.append('All slots are in the past')
            return preview

        new_slots = [draft for draft in candidates if draft.start_at not in existing_starts]
        if candidates and not new_slots:
            preview.status = MODE_EXISTS
            preview.reasons.append('Slots already exist')
            return preview

        preview.existing_count = len(candidates) - len(new_slots)
        if preview.existing_count:
            preview.reasons.append(f'{preview.existing_count} slot(s) already exist')
        preview.count = len(new_slots)
        return preview
