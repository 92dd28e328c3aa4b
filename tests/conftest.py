import os

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('REMINDERS_ENABLED', 'false')

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from clinic_scheduler.core.clock import TimeZoneClock  # noqa: E402
from clinic_scheduler.core.settings import SchedulerSettings  # noqa: E402
from clinic_scheduler.database import Base  # noqa: E402
from clinic_scheduler.models import appointment, slot  # noqa: E402,F401
from clinic_scheduler.models.user import ROLE_ADMIN, ROLE_PATIENT, User  # noqa: E402
from clinic_scheduler.services.notifications import SendResult  # noqa: E402


@pytest.fixture
def session_factory():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> TimeZoneClock:
    return TimeZoneClock('Asia/Kolkata')


@pytest.fixture
def settings() -> SchedulerSettings:
    return SchedulerSettings(timezone='Asia/Kolkata', min_booking_lead_seconds=0)


@pytest.fixture
def provider(db) -> User:
    user = User(name='Dr. Rao', email='doctor@clinic.example', phone='+91 90000 00001', role=ROLE_ADMIN)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def patient(db) -> User:
    user = User(name='Asha', email='asha@example.com', phone='+91 90000 00002', role=ROLE_PATIENT)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


class RecordingSender:
    """In-memory transport that records every send and fails on demand."""

    def __init__(self, channel='whatsapp', fail_for=(), raises=False, on_send=None):
        self.channel = channel
        self.fail_for = set(fail_for)
        self.raises = raises
        self.on_send = on_send
        self.sent = []

    def address_for(self, recipient):
        return recipient.phone if self.channel == 'whatsapp' else recipient.email

    def send(self, recipient, template_id, variables):
        if self.raises:
            raise RuntimeError('transport exploded')
        self.sent.append((recipient.name, template_id, dict(variables)))
        if self.on_send is not None:
            self.on_send(recipient, template_id)
        if recipient.name in self.fail_for:
            return SendResult(success=False, error='HTTP 500: upstream error')
        return SendResult(success=True)


@pytest.fixture
def make_sender():
    return RecordingSender
