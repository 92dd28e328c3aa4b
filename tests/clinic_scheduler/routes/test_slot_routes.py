from datetime import date

import pytest
from pydantic import ValidationError

from clinic_scheduler.models.slot import AppointmentMode, Slot
from clinic_scheduler.routes.slot_routes import CreateDayOffRequest, SlotRangeRequest

SUNDAY = '2030-01-06'
MONDAY = '2030-01-07'
TUESDAY = '2030-01-08'


def test_slot_range_request_deduplicates_modes() -> None:
    request = SlotRangeRequest(
        start_date=date(2030, 1, 7),
        end_date=date(2030, 1, 7),
        modes=['ONLINE', 'ONLINE', 'IN_PERSON'],
    )

    assert request.modes == [AppointmentMode.ONLINE, AppointmentMode.IN_PERSON]


@pytest.mark.parametrize('modes', [[], ['VIDEO']])
def test_slot_range_request_rejects_bad_modes(modes) -> None:
    with pytest.raises(ValidationError):
        SlotRangeRequest(start_date=date(2030, 1, 7), end_date=date(2030, 1, 7), modes=modes)


def test_day_off_request_normalizes_reason() -> None:
    assert CreateDayOffRequest(date=date(2030, 1, 7), reason='  Conference  ').reason == 'Conference'
    assert CreateDayOffRequest(date=date(2030, 1, 7), reason='   ').reason is None
    with pytest.raises(ValidationError):
        CreateDayOffRequest(date=date(2030, 1, 7), reason='x' * 201)


def test_generate_and_list_available_slots(client, provider) -> None:
    response = client.post('/slots/generate', json={'start_date': SUNDAY, 'end_date': MONDAY, 'modes': ['IN_PERSON']})

    assert response.status_code == 201
    assert response.json() == {'created_count': 6}

    available = client.get('/slots/available', params={'date': MONDAY, 'mode': 'IN_PERSON'})

    assert available.status_code == 200
    labels = [slot['label'] for slot in available.json()]
    assert labels[0] == '9:00 AM - 9:40 AM'
    assert len(labels) == 6
    assert client.get('/slots/available', params={'date': SUNDAY, 'mode': 'IN_PERSON'}).json() == []


def test_generate_rejects_inverted_and_oversized_ranges(client, provider) -> None:
    inverted = client.post('/slots/generate', json={'start_date': TUESDAY, 'end_date': MONDAY, 'modes': ['ONLINE']})
    oversized = client.post('/slots/generate', json={'start_date': MONDAY, 'end_date': '2030-06-01', 'modes': ['ONLINE']})

    assert inverted.status_code == 400
    assert oversized.status_code == 400


def test_generate_without_provider_is_unavailable(client) -> None:
    response = client.post('/slots/generate', json={'start_date': MONDAY, 'end_date': MONDAY, 'modes': ['ONLINE']})

    assert response.status_code == 503
    assert response.json()['detail'] == 'No provider found in database. Seed the provider first.'


def test_preview_reports_totals_and_closed_dates(client, provider) -> None:
    response = client.post(
        '/slots/preview',
        json={'start_date': SUNDAY, 'end_date': TUESDAY, 'modes': ['IN_PERSON', 'ONLINE']},
    )

    assert response.status_code == 200
    body = response.json()
    assert body['total_slots'] == 24
    assert body['in_person_slots'] == 12
    assert body['online_slots'] == 12
    assert body['dates'][0]['date'] == SUNDAY
    assert body['dates'][0]['status'] == 'closed'
    assert body['errors'] == []


def test_admin_listing_and_date_range(client, db, provider) -> None:
    client.post('/slots/generate', json={'start_date': MONDAY, 'end_date': TUESDAY, 'modes': ['ONLINE']})

    listing = client.get('/slots', params={'date': TUESDAY})
    date_range = client.get('/slots/range')

    assert listing.status_code == 200
    assert len(listing.json()) == 6
    assert all(row['appointment'] is None for row in listing.json())
    assert date_range.json() == {'has_slots': True, 'earliest_date': MONDAY, 'latest_date': TUESDAY}


def test_day_off_lifecycle(client, db, provider) -> None:
    client.post('/slots/generate', json={'start_date': MONDAY, 'end_date': MONDAY, 'modes': ['ONLINE']})

    created = client.post('/slots/day-offs', json={'date': MONDAY, 'reason': 'Conference'})

    assert created.status_code == 201
    assert created.json()['reason'] == 'Conference'
    assert db.query(Slot).count() == 0
    assert [day_off['date'] for day_off in client.get('/slots/day-offs').json()] == [MONDAY]

    deleted = client.delete(f"/slots/day-offs/{created.json()['id']}")
    missing = client.delete(f"/slots/day-offs/{created.json()['id']}")

    assert deleted.status_code == 204
    assert missing.status_code == 404
