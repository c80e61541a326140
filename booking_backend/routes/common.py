from fastapi import BackgroundTasks, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.core.exceptions import (
    InvalidTransition,
    NotAuthorized,
    RecordNotFound,
    SchedulingError,
    SlotUnavailable,
    StoreError,
)
from booking_backend.database import ensure_appointment_schema, ensure_schedule_schema
from booking_backend.services.notifications import DatabaseNotifier
from booking_backend.services.scheduling import SchedulingService
from booking_backend.services.store import AppointmentStore

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'

_STATUS_CODES = {
    SlotUnavailable: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    NotAuthorized: status.HTTP_403_FORBIDDEN,
    RecordNotFound: status.HTTP_404_NOT_FOUND,
}


def to_http_exception(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, StoreError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        )

    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))

    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def build_scheduling_service(db: Session, background_tasks: BackgroundTasks | None = None) -> SchedulingService:
    notifier = DatabaseNotifier() if config.NOTIFICATIONS_ENABLED else None
    dispatch = background_tasks.add_task if background_tasks is not None else None
    return SchedulingService(AppointmentStore(db), notifier=notifier, dispatch=dispatch)
