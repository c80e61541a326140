from datetime import date, time

import pytest
from fastapi import BackgroundTasks, HTTPException
from fastapi.testclient import TestClient
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from booking_backend.auth.jwt_handler import create_access_token
from booking_backend.core import config
from booking_backend.database import get_db
from booking_backend.main import app
from booking_backend.routes import appointment_routes
from booking_backend.routes.appointment_routes import (
    CancelAppointmentRequest,
    CreateAppointmentRequest,
    RescheduleAppointmentRequest,
    UpdateAppointmentStatusRequest,
    cancel_appointment,
    create_appointment,
    get_appointment,
    list_my_appointments,
    reschedule_appointment,
    update_appointment_status,
)
from booking_backend.routes.common import DATABASE_UNAVAILABLE_DETAIL

MONDAY = date(2026, 1, 5)


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('booking_backend.routes.appointment_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('booking_backend.routes.availability_routes.ensure_database_ready', lambda: None)


def _create(db, marketplace, start_time=time(10, 0), user=None, background_tasks=None):
    return create_appointment(
        data=CreateAppointmentRequest(
            professional_id=marketplace.professional.id,
            service_id=marketplace.haircut.id,
            date=MONDAY,
            start_time=start_time,
        ),
        background_tasks=background_tasks or BackgroundTasks(),
        current_user=user or marketplace.client,
        db=db,
    )


def test_create_appointment_request_normalizes_notes() -> None:
    request = CreateAppointmentRequest(
        professional_id=1,
        service_id=1,
        date=MONDAY,
        start_time='10:00',
        notes='   ',
    )

    assert request.notes is None
    assert request.start_time == time(10, 0)


def test_create_appointment_request_rejects_long_notes() -> None:
    with pytest.raises(ValidationError):
        CreateAppointmentRequest(
            professional_id=1,
            service_id=1,
            date=MONDAY,
            start_time='10:00',
            notes='x' * (appointment_routes.MAX_APPOINTMENT_NOTES_LENGTH + 1),
        )


def test_status_request_rejects_unknown_status() -> None:
    with pytest.raises(ValidationError):
        UpdateAppointmentStatusRequest(status='archived')


def test_cancel_request_strips_reason() -> None:
    assert CancelAppointmentRequest(reason='  Running late  ').reason == 'Running late'


def test_create_appointment_books_for_current_user_and_queues_notification(db, marketplace) -> None:
    background_tasks = BackgroundTasks()

    appointment = _create(db, marketplace, background_tasks=background_tasks)

    assert appointment.user_id == marketplace.client.id
    assert appointment.status == 'scheduled'
    assert appointment.end_time == time(10, 30)
    assert len(background_tasks.tasks) == 1


def test_create_appointment_skips_notification_when_disabled(db, marketplace, monkeypatch) -> None:
    monkeypatch.setattr(config, 'NOTIFICATIONS_ENABLED', False)
    background_tasks = BackgroundTasks()

    _create(db, marketplace, background_tasks=background_tasks)

    assert background_tasks.tasks == []


def test_create_appointment_returns_conflict_for_taken_slot(db, marketplace) -> None:
    _create(db, marketplace)

    with pytest.raises(HTTPException) as exception_info:
        _create(db, marketplace, user=marketplace.other_client)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is not available.'


def test_create_appointment_returns_not_found_for_foreign_service(db, marketplace) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=CreateAppointmentRequest(
                professional_id=marketplace.professional.id,
                service_id=marketplace.massage.id,
                date=MONDAY,
                start_time=time(10, 0),
            ),
            background_tasks=BackgroundTasks(),
            current_user=marketplace.client,
            db=db,
        )

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Service not found for this professional.'


def test_create_appointment_returns_503_when_store_fails(db, marketplace, monkeypatch) -> None:
    def failing_query(*args, **kwargs):
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    monkeypatch.setattr(db, 'query', failing_query)

    with pytest.raises(HTTPException) as exception_info:
        _create(db, marketplace)

    assert exception_info.value.status_code == 503
    assert exception_info.value.detail == DATABASE_UNAVAILABLE_DETAIL


def test_get_appointment_rejects_unrelated_client(db, marketplace) -> None:
    appointment = _create(db, marketplace)

    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=appointment.id, current_user=marketplace.other_client, db=db)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only the client or the professional can act on this appointment.'


def test_get_appointment_returns_not_found_when_missing(db, marketplace) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_appointment(appointment_id=999, current_user=marketplace.client, db=db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_professional_can_confirm_and_complete(db, marketplace) -> None:
    appointment = _create(db, marketplace)

    confirmed = update_appointment_status(
        appointment_id=appointment.id,
        data=UpdateAppointmentStatusRequest(status='confirmed'),
        background_tasks=BackgroundTasks(),
        current_user=marketplace.professional_user,
        db=db,
    )
    assert confirmed.status == 'confirmed'

    completed = update_appointment_status(
        appointment_id=appointment.id,
        data=UpdateAppointmentStatusRequest(status='completed'),
        background_tasks=BackgroundTasks(),
        current_user=marketplace.professional_user,
        db=db,
    )
    assert completed.status == 'completed'


def test_invalid_transition_returns_conflict(db, marketplace) -> None:
    appointment = _create(db, marketplace)

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            appointment_id=appointment.id,
            data=UpdateAppointmentStatusRequest(status='completed'),
            background_tasks=BackgroundTasks(),
            current_user=marketplace.client,
            db=db,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == "Cannot move appointment from 'scheduled' to 'completed'."


def test_reschedule_route_moves_the_booking(db, marketplace) -> None:
    appointment = _create(db, marketplace)

    moved = reschedule_appointment(
        appointment_id=appointment.id,
        data=RescheduleAppointmentRequest(date=MONDAY, start_time=time(9, 0)),
        background_tasks=BackgroundTasks(),
        current_user=marketplace.client,
        db=db,
    )

    assert (moved.start_time, moved.end_time) == (time(9, 0), time(9, 30))


def test_cancel_route_accepts_missing_body(db, marketplace) -> None:
    appointment = _create(db, marketplace)

    cancelled = cancel_appointment(
        appointment_id=appointment.id,
        background_tasks=BackgroundTasks(),
        data=None,
        current_user=marketplace.client,
        db=db,
    )

    assert cancelled.status == 'cancelled'


def test_cancelled_appointment_cannot_be_cancelled_again(db, marketplace) -> None:
    appointment = _create(db, marketplace)
    cancel_appointment(
        appointment_id=appointment.id,
        background_tasks=BackgroundTasks(),
        data=CancelAppointmentRequest(reason='Schedule clash'),
        current_user=marketplace.client,
        db=db,
    )

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(
            appointment_id=appointment.id,
            background_tasks=BackgroundTasks(),
            data=None,
            current_user=marketplace.professional_user,
            db=db,
        )

    assert exception_info.value.status_code == 409


def test_list_my_appointments_only_returns_own_bookings(db, marketplace) -> None:
    mine = _create(db, marketplace, start_time=time(9, 0))
    _create(db, marketplace, start_time=time(11, 0), user=marketplace.other_client)

    listed = list_my_appointments(current_user=marketplace.client, db=db)

    assert [appointment.id for appointment in listed] == [mine.id]


@pytest.fixture
def api_client(session_factory, monkeypatch):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(config, 'NOTIFICATIONS_ENABLED', False)
    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth_header(email: str) -> dict:
    return {'Authorization': f'Bearer {create_access_token(subject=email)}'}


def test_booking_flow_over_http(api_client, marketplace) -> None:
    payload = {
        'professional_id': marketplace.professional.id,
        'service_id': marketplace.haircut.id,
        'date': '2026-01-05',
        'start_time': '10:00',
    }
    client_headers = _auth_header(marketplace.client.email)

    created = api_client.post('/appointments', json=payload, headers=client_headers)
    assert created.status_code == 201
    assert created.json()['status'] == 'scheduled'
    assert created.json()['end_time'] == '10:30:00'

    slots = api_client.get(f'/availability/professionals/{marketplace.professional.id}/slots?date=2026-01-05')
    assert slots.status_code == 200
    assert [slot['available'] for slot in slots.json()] == [True, True, False, True, True, True]

    duplicate = api_client.post('/appointments', json=payload, headers=_auth_header(marketplace.other_client.email))
    assert duplicate.status_code == 409

    confirmed = api_client.patch(
        f"/appointments/{created.json()['id']}/status",
        json={'status': 'confirmed'},
        headers=_auth_header(marketplace.professional_user.email),
    )
    assert confirmed.status_code == 200
    assert confirmed.json()['status'] == 'confirmed'


def test_appointments_require_a_bearer_token(api_client, marketplace) -> None:
    response = api_client.get('/appointments/mine')

    assert response.status_code in {401, 403}
