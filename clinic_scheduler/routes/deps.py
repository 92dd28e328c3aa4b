from functools import lru_cache

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from clinic_scheduler.core import config
from clinic_scheduler.core.clock import TimeZoneClock
from clinic_scheduler.core.errors import (
    ConfigurationError,
    DayOffConflict,
    DayOffNotFound,
    InvalidRange,
    PatientNotFound,
    SchedulingError,
    SlotAlreadyBooked,
    SlotNotFound,
    SlotUnavailable,
    StorageUnavailable,
)
from clinic_scheduler.core.settings import SchedulerSettings
from clinic_scheduler.database import SessionLocal, ensure_scheduler_schema
from clinic_scheduler.services.notifications import NotificationChannels, build_default_channels

ERROR_STATUS_CODES = {
    InvalidRange: status.HTTP_400_BAD_REQUEST,
    SlotNotFound: status.HTTP_404_NOT_FOUND,
    DayOffNotFound: status.HTTP_404_NOT_FOUND,
    PatientNotFound: status.HTTP_404_NOT_FOUND,
    SlotAlreadyBooked: status.HTTP_409_CONFLICT,
    SlotUnavailable: status.HTTP_409_CONFLICT,
    DayOffConflict: status.HTTP_409_CONFLICT,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(exc: SchedulingError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    return SessionLocal


@lru_cache
def get_clock() -> TimeZoneClock:
    return TimeZoneClock(config.BUSINESS_TIMEZONE)


@lru_cache
def get_settings() -> SchedulerSettings:
    return SchedulerSettings.from_config()


@lru_cache
def get_channels() -> NotificationChannels:
    return build_default_channels()


def ensure_database_ready() -> None:
    try:
        ensure_scheduler_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL.',
        ) from exc
