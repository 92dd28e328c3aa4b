from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session, sessionmaker

from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.errors import SchedulingError
from clinic_scheduler.core.settings import SchedulerSettings
from clinic_scheduler.models.appointment import AppointmentStatus
from clinic_scheduler.models.slot import AppointmentMode
from clinic_scheduler.routes.deps import (
    ensure_database_ready,
    get_channels,
    get_clock,
    get_db,
    get_session_factory,
    get_settings,
    to_http_exception,
)
from clinic_scheduler.services.booking import AppointmentDraft, BookingCoordinator
from clinic_scheduler.services.confirmations import send_booking_confirmation
from clinic_scheduler.services.notifications import NotificationChannels

router = APIRouter(tags=['appointments'])


class BookSlotRequest(BaseModel):
    slot_id: int
    patient_id: int

    @field_validator('slot_id', 'patient_id')
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Identifiers must be positive.')
        return value


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    slot_id: int | None = None
    start_at: datetime
    end_at: datetime
    mode: AppointmentMode | None = None
    label: str
    status: AppointmentStatus
    reminder_sent: bool
    reminder_time: datetime | None = None


class ReminderStatsResponse(BaseModel):
    queue_size: int
    in_flight: int
    is_running: bool
    is_scanning: bool
    skipped_ticks: int


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def book_slot(
    data: BookSlotRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    clock: TimeZoneClock = Depends(get_clock),
    settings: SchedulerSettings = Depends(get_settings),
    session_factory: sessionmaker = Depends(get_session_factory),
    channels: NotificationChannels = Depends(get_channels),
):
    ensure_database_ready()

    def queue_confirmation(appointment_id: int) -> None:
        background_tasks.add_task(send_booking_confirmation, appointment_id, session_factory, channels, clock)

    coordinator = BookingCoordinator(clock, settings, on_booked=queue_confirmation)

    try:
        appointment = coordinator.book_slot(db, data.slot_id, AppointmentDraft(patient_id=data.patient_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return AppointmentResponse(
        id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        slot_id=appointment.slot_id,
        start_at=appointment.start_at,
        end_at=appointment.end_at,
        mode=appointment.slot.mode if appointment.slot else None,
        label=clock.format_slot_label(appointment.start_at, appointment.end_at),
        status=appointment.status,
        reminder_sent=appointment.reminder_sent,
        reminder_time=appointment.reminder_time,
    )


@router.get('/reminders/stats', response_model=ReminderStatsResponse)
def get_reminder_stats(request: Request):
    reminder_service = getattr(request.app.state, 'reminder_service', None)
    if reminder_service is None:
        return ReminderStatsResponse(queue_size=0, in_flight=0, is_running=False, is_scanning=False, skipped_ticks=0)

    stats = reminder_service.stats()
    return ReminderStatsResponse(
        queue_size=stats.queue_size,
        in_flight=stats.in_flight,
        is_running=stats.is_running,
        is_scanning=stats.is_scanning,
        skipped_ticks=stats.skipped_ticks,
    )
