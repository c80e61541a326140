from datetime import date, datetime, time

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from booking_backend.auth.dependencies import get_current_user
from booking_backend.core.exceptions import SchedulingError
from booking_backend.database import get_db
from booking_backend.models.appointment import AppointmentStatus
from booking_backend.models.user import User
from booking_backend.routes.common import build_scheduling_service, ensure_database_ready, to_http_exception

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_CANCELLATION_REASON_LENGTH = 300


def _normalize_free_text(value: str | None, max_length: int, label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > max_length:
        raise ValueError(f'{label} must be {max_length} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    professional_id: int
    service_id: int
    date: date
    start_time: time
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_free_text(value, MAX_APPOINTMENT_NOTES_LENGTH, 'Notes')


class RescheduleAppointmentRequest(BaseModel):
    date: date
    start_time: time


class UpdateAppointmentStatusRequest(BaseModel):
    status: AppointmentStatus


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_free_text(value, MAX_CANCELLATION_REASON_LENGTH, 'Reason')


class AppointmentResponse(BaseModel):
    id: int
    user_id: int
    professional_id: int
    service_id: int
    date: date
    start_time: time
    end_time: time
    status: str
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_scheduling_service(db, background_tasks).create_appointment(
            user_id=current_user.id,
            professional_id=data.professional_id,
            service_id=data.service_id,
            on_date=data.date,
            start_time=data.start_time,
            notes=data.notes,
            actor=current_user,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_scheduling_service(db).list_client_appointments(current_user.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/professional/{professional_id}', response_model=list[AppointmentResponse])
def list_professional_appointments(
    professional_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_scheduling_service(db).list_professional_appointments(professional_id, actor=current_user)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_scheduling_service(db).get_appointment(appointment_id, actor=current_user)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateAppointmentStatusRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_scheduling_service(db, background_tasks).update_appointment_status(
            appointment_id,
            data.status,
            actor=current_user,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_scheduling_service(db, background_tasks).reschedule_appointment(
            appointment_id,
            data.date,
            data.start_time,
            actor=current_user,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    data: CancelAppointmentRequest | None = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_scheduling_service(db, background_tasks).cancel_appointment(
            appointment_id,
            reason=data.reason if data else None,
            actor=current_user,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
