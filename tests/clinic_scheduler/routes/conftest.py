import pytest
from fastapi.testclient import TestClient

from clinic_scheduler.main import app
from clinic_scheduler.routes import appointment_routes, slot_routes
from clinic_scheduler.routes.deps import get_channels, get_clock, get_db, get_session_factory, get_settings
from clinic_scheduler.services.notifications import NotificationChannels


@pytest.fixture
def sender(make_sender):
    return make_sender()


@pytest.fixture
def client(session_factory, clock, settings, sender, monkeypatch: pytest.MonkeyPatch):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_channels] = lambda: NotificationChannels(primary=sender)
    monkeypatch.setattr(slot_routes, 'ensure_database_ready', lambda: None)
    monkeypatch.setattr(appointment_routes, 'ensure_database_ready', lambda: None)

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
