from datetime import date, time, timedelta

import pytest
from pydantic import ValidationError

from clinic_scheduler.routes.appointment_routes import UpdateAppointmentStatusRequest
from clinic_scheduler.services.availability import AvailabilityCalculator
from clinic_scheduler.services.booking import BookingCoordinator, KeyedLocks, PatientDetails

MONDAY = date(2026, 1, 5)


@pytest.fixture
def booked_appointments(db, doctor, monday_rule):
    """Three bookings on MONDAY and one a week later."""
    coordinator = BookingCoordinator(db, locks=KeyedLocks())
    appointments = []
    for index, (slot_date, start_time) in enumerate(
        [(MONDAY, time(9, 0)), (MONDAY, time(9, 30)), (MONDAY, time(10, 0)), (MONDAY + timedelta(days=7), time(9, 0))]
    ):
        patient = PatientDetails(name=f'Patient {index}', mobile_number=f'98765000{index:02d}', gender='OTHER')
        appointments.append(coordinator.book(doctor.id, slot_date, start_time, patient))
    return appointments


def test_update_status_request_normalizes_value() -> None:
    assert UpdateAppointmentStatusRequest(appointment_status=' checked_in ').appointment_status == 'CHECKED_IN'


def test_update_status_request_rejects_unknown_value() -> None:
    with pytest.raises(ValidationError):
        UpdateAppointmentStatusRequest(appointment_status='CANCELLED')


def test_list_appointments_paginates(client, booked_appointments) -> None:
    first_page = client.get('/appointments/all/appointments', params={'page_size': 3}).json()['data']

    assert first_page['count'] == 4
    assert len(first_page['results']) == 3
    assert first_page['previous'] is None
    assert 'page=2' in first_page['next']

    second_page = client.get('/appointments/all/appointments', params={'page': 2, 'page_size': 3}).json()['data']
    assert [item['name'] for item in second_page['results']] == ['Patient 3']
    assert second_page['next'] is None
    assert 'page=1' in second_page['previous']


def test_list_appointments_filters_by_date(client, booked_appointments) -> None:
    page = client.get('/appointments/all/appointments', params={'date': '12-01-2026'}).json()['data']

    assert page['count'] == 1
    assert page['results'][0]['slot']['date'] == '12-01-2026'


def test_list_appointments_rejects_malformed_date(client) -> None:
    response = client.get('/appointments/all/appointments', params={'date': '12/01/2026'})

    assert response.status_code == 400
    assert 'date' in response.json()['error']['details']


def test_status_change_keeps_slot_booked(client, db, doctor, booked_appointments) -> None:
    appointment = booked_appointments[0]

    response = client.put(f'/appointments/{appointment.id}', json={'appointment_status': 'NO_SHOW'})

    assert response.status_code == 200
    assert response.json()['data']['appointment_status'] == 'NO_SHOW'
    assert response.json()['data']['slot']['slot_status'] == 'BOOKED'

    days = AvailabilityCalculator(db).compute_availability(doctor.id, MONDAY, MONDAY)
    assert time(9, 0) not in [window.start_time for window in days[0].slots]


def test_status_change_for_unknown_appointment_returns_not_found(client) -> None:
    response = client.put('/appointments/missing', json={'appointment_status': 'CHECKED_IN'})

    assert response.status_code == 404
    assert response.json()['error']['message'] == 'Appointment not found.'
