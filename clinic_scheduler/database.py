from datetime import datetime, timezone
from threading import Lock

from sqlalchemy import DateTime, create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.types import TypeDecorator

from clinic_scheduler.core import config


def _engine_options(database_url: str) -> dict:
    if database_url.startswith('sqlite'):
        # Reminder workers touch the database from worker threads.
        return {'connect_args': {'check_same_thread': False}}
    return {'pool_pre_ping': True}


engine = create_engine(config.DATABASE_URL, **_engine_options(config.DATABASE_URL))

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Stores instants as UTC and always hands back aware UTC datetimes."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


_schema_lock = Lock()
_scheduler_schema_checked = False

SCHEDULER_INDEXES = {
    'slots': [
        'CREATE INDEX IF NOT EXISTS idx_slots_mode_booked_start ON slots(mode, is_booked, start_at)',
    ],
    'appointments': [
        'CREATE INDEX IF NOT EXISTS idx_appointments_reminder_due '
        'ON appointments(status, reminder_sent, reminder_time)',
        'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_start ON appointments(doctor_id, start_at)',
    ],
}


def ensure_scheduler_schema(bind=None) -> None:
    global _scheduler_schema_checked

    if _scheduler_schema_checked and bind is None:
        return

    target = bind or engine

    with _schema_lock:
        if _scheduler_schema_checked and bind is None:
            return

        inspector = inspect(target)
        existing_tables = set(inspector.get_table_names())

        with target.begin() as connection:
            for table_name, statements in SCHEDULER_INDEXES.items():
                if table_name not in existing_tables:
                    continue
                for statement in statements:
                    connection.execute(text(statement))

        if bind is None:
            _scheduler_schema_checked = True
