from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.core.settings import SchedulerSettings
from clinic_scheduler.models.slot import AppointmentMode
from clinic_scheduler.routes.deps import (
    ensure_database_ready,
    get_clock,
    get_db,
    get_settings,
    to_http_exception,
)
from clinic_scheduler.services import slot_admin
from clinic_scheduler.services.booking import BookingCoordinator
from clinic_scheduler.services.slot_generator import SlotGenerator

router = APIRouter(tags=['slots'])

MAX_GENERATION_RANGE_DAYS = 92
MAX_DAY_OFF_REASON_LENGTH = 200


class SlotRangeRequest(BaseModel):
    start_date: date
    end_date: date
    modes: list[AppointmentMode]

    @field_validator('modes')
    @classmethod
    def validate_modes(cls, value: list[AppointmentMode]) -> list[AppointmentMode]:
        if not value:
            raise ValueError('At least one mode is required.')
        return list(dict.fromkeys(value))


class GenerateSlotsResponse(BaseModel):
    created_count: int


class ModePreviewResponse(BaseModel):
    mode: AppointmentMode
    count: int
    status: str
    reasons: list[str]


class DatePreviewResponse(BaseModel):
    date: date
    status: str
    reasons: list[str]
    modes: list[ModePreviewResponse]


class PreviewSlotsResponse(BaseModel):
    total_slots: int
    in_person_slots: int
    online_slots: int
    errors: list[str]
    warnings: list[str]
    dates: list[DatePreviewResponse]


class AvailableSlotResponse(BaseModel):
    id: int
    start_at: datetime
    end_at: datetime
    label: str
    mode: AppointmentMode


class SlotBookingSummary(BaseModel):
    id: int
    patient_id: int
    patient_name: str | None = None


class AdminSlotResponse(BaseModel):
    id: int
    start_at: datetime
    end_at: datetime
    label: str
    mode: AppointmentMode
    is_booked: bool
    is_archived: bool
    appointment: SlotBookingSummary | None = None


class SlotDateRangeResponse(BaseModel):
    has_slots: bool
    earliest_date: date | None = None
    latest_date: date | None = None


class CreateDayOffRequest(BaseModel):
    date: date
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_DAY_OFF_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_DAY_OFF_REASON_LENGTH} characters or fewer.')

        return normalized


class DayOffResponse(BaseModel):
    id: int
    date: date
    reason: str | None = None

    class Config:
        from_attributes = True


def build_generator(clock: TimeZoneClock, settings: SchedulerSettings) -> SlotGenerator:
    return SlotGenerator(clock, closure_day=settings.weekly_closure_day)


def validate_generation_range(data: SlotRangeRequest) -> None:
    if (data.end_date - data.start_date).days > MAX_GENERATION_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Slots can be generated for at most {MAX_GENERATION_RANGE_DAYS} days at a time.',
        )


@router.post('/generate', response_model=GenerateSlotsResponse, status_code=status.HTTP_201_CREATED)
def generate_slots(
    data: SlotRangeRequest,
    db: Session = Depends(get_db),
    clock: TimeZoneClock = Depends(get_clock),
    settings: SchedulerSettings = Depends(get_settings),
):
    validate_generation_range(data)
    ensure_database_ready()

    try:
        result = build_generator(clock, settings).generate(db, data.start_date, data.end_date, data.modes)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return GenerateSlotsResponse(created_count=result.created_count)


@router.post('/preview', response_model=PreviewSlotsResponse)
def preview_slots(
    data: SlotRangeRequest,
    db: Session = Depends(get_db),
    clock: TimeZoneClock = Depends(get_clock),
    settings: SchedulerSettings = Depends(get_settings),
):
    validate_generation_range(data)
    ensure_database_ready()

    try:
        preview = build_generator(clock, settings).preview(db, data.start_date, data.end_date, data.modes)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return PreviewSlotsResponse(
        total_slots=preview.total_slots,
        in_person_slots=preview.totals.get(AppointmentMode.IN_PERSON, 0),
        online_slots=preview.totals.get(AppointmentMode.ONLINE, 0),
        errors=preview.errors,
        warnings=preview.warnings,
        dates=[
            DatePreviewResponse(
                date=date_preview.date,
                status=date_preview.status,
                reasons=date_preview.reasons,
                modes=[
                    ModePreviewResponse(
                        mode=mode_preview.mode,
                        count=mode_preview.count,
                        status=mode_preview.status,
                        reasons=mode_preview.reasons,
                    )
                    for mode_preview in date_preview.modes.values()
                ],
            )
            for date_preview in preview.dates
        ],
    )


@router.get('/available', response_model=list[AvailableSlotResponse])
def list_available_slots(
    slot_date: date = Query(..., alias='date'),
    mode: AppointmentMode = Query(...),
    db: Session = Depends(get_db),
    clock: TimeZoneClock = Depends(get_clock),
    settings: SchedulerSettings = Depends(get_settings),
):
    ensure_database_ready()

    try:
        slots = BookingCoordinator(clock, settings).list_available(db, slot_date, mode)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [
        AvailableSlotResponse(
            id=slot.id,
            start_at=slot.start_at,
            end_at=slot.end_at,
            label=clock.format_slot_label(slot.start_at, slot.end_at),
            mode=slot.mode,
        )
        for slot in slots
    ]


@router.get('', response_model=list[AdminSlotResponse])
def list_slots(
    slot_date: date | None = Query(default=None, alias='date'),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    mode: AppointmentMode | None = Query(default=None),
    db: Session = Depends(get_db),
    clock: TimeZoneClock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        rows = slot_admin.list_admin_slots(db, clock, slot_date, start_date, end_date, mode)

        return [
            AdminSlotResponse(
                id=slot.id,
                start_at=slot.start_at,
                end_at=slot.end_at,
                label=clock.format_slot_label(slot.start_at, slot.end_at),
                mode=slot.mode,
                is_booked=slot.is_booked,
                is_archived=slot.is_archived,
                appointment=(
                    SlotBookingSummary(
                        id=appointment.id,
                        patient_id=appointment.patient_id,
                        patient_name=appointment.patient.name if appointment.patient else None,
                    )
                    if appointment is not None
                    else None
                ),
            )
            for slot, appointment in rows
        ]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/range', response_model=SlotDateRangeResponse)
def get_slot_date_range(
    db: Session = Depends(get_db),
    clock: TimeZoneClock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        date_range = slot_admin.get_slot_date_range(db, clock)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return SlotDateRangeResponse(
        has_slots=date_range.has_slots,
        earliest_date=date_range.earliest_date,
        latest_date=date_range.latest_date,
    )


@router.post('/day-offs', response_model=DayOffResponse, status_code=status.HTTP_201_CREATED)
def create_day_off(
    data: CreateDayOffRequest,
    db: Session = Depends(get_db),
    clock: TimeZoneClock = Depends(get_clock),
):
    ensure_database_ready()

    try:
        return slot_admin.add_day_off(db, clock, data.date, data.reason)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.delete('/day-offs/{day_off_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_day_off(day_off_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        slot_admin.remove_day_off(db, day_off_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/day-offs', response_model=list[DayOffResponse])
def list_day_offs(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return slot_admin.list_day_offs(db)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
