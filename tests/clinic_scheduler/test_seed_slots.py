import pytest

from clinic_scheduler import seed_slots
from clinic_scheduler.models.slot import AppointmentMode, Slot
from clinic_scheduler.models.user import ROLE_ADMIN, User


@pytest.fixture
def seeded_database(session_factory, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(seed_slots, 'SessionLocal', session_factory)
    monkeypatch.setattr(seed_slots, 'engine', session_factory.kw['bind'])
    monkeypatch.setenv('PROVIDER_NAME', 'Dr. Rao')
    return session_factory


def test_seed_creates_provider_and_slots(seeded_database, db, capsys: pytest.CaptureFixture) -> None:
    seed_slots.main(['2030-01-07', '2030-01-07', '--mode', 'ONLINE'])

    assert capsys.readouterr().out.strip() == 'Created 6 slots'
    provider = db.query(User).filter(User.role == ROLE_ADMIN).one()
    assert provider.name == 'Dr. Rao'
    assert {slot.mode for slot in db.query(Slot).all()} == {AppointmentMode.ONLINE}


def test_seed_reuses_existing_provider(seeded_database, db, provider, capsys: pytest.CaptureFixture) -> None:
    seed_slots.main(['2030-01-07', '2030-01-08'])

    assert capsys.readouterr().out.strip() == 'Created 24 slots'
    assert db.query(User).count() == 1


def test_seed_reports_invalid_range(seeded_database) -> None:
    with pytest.raises(SystemExit):
        seed_slots.main(['2030-01-08', '2030-01-07'])
