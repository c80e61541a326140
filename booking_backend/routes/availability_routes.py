from datetime import date, time
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from booking_backend.auth.dependencies import get_current_user
from booking_backend.core.exceptions import SchedulingError
from booking_backend.database import get_db
from booking_backend.models.user import ADMIN_ROLE, PROFESSIONAL_ROLE, User
from booking_backend.routes.common import build_scheduling_service, ensure_database_ready, to_http_exception
from booking_backend.services.scheduling import SLOT_INCREMENT_MINUTES

router = APIRouter(tags=['availability'])

MAX_SERVICE_NAME_LENGTH = 120


class TimeSlotResponse(BaseModel):
    start_time: time
    end_time: time
    available: bool

    class Config:
        from_attributes = True


class WorkingHoursRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time

    @field_validator('start_time', 'end_time')
    @classmethod
    def truncate_seconds(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0)

    @model_validator(mode='after')
    def validate_window(self) -> 'WorkingHoursRequest':
        if self.start_time >= self.end_time:
            raise ValueError('Working hours must start before they end.')
        return self


class WorkingHoursResponse(BaseModel):
    id: int
    professional_id: int
    day_of_week: int
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class CreateServiceRequest(BaseModel):
    name: str
    duration: int = Field(gt=0, le=24 * 60)
    price: Decimal = Field(ge=0)

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Service name is required.')
        if len(normalized) > MAX_SERVICE_NAME_LENGTH:
            raise ValueError(f'Service name must be {MAX_SERVICE_NAME_LENGTH} characters or fewer.')
        return normalized


class ServiceResponse(BaseModel):
    id: int
    professional_id: int
    name: str
    duration: int
    price: Decimal

    class Config:
        from_attributes = True


class SlotGranularityResponse(BaseModel):
    slot_minutes: int


@router.get('/slot-granularity', response_model=SlotGranularityResponse)
def get_slot_granularity():
    return SlotGranularityResponse(slot_minutes=SLOT_INCREMENT_MINUTES)


@router.get('/professionals/{professional_id}/slots', response_model=list[TimeSlotResponse])
def list_time_slots(
    professional_id: int,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        service = build_scheduling_service(db)
        return service.get_available_time_slots(professional_id, slot_date)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/professionals/{professional_id}/working-hours', response_model=list[WorkingHoursResponse])
def list_working_hours(professional_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return build_scheduling_service(db).list_working_hours(professional_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.put('/professionals/{professional_id}/working-hours', response_model=WorkingHoursResponse)
def set_working_hours(
    professional_id: int,
    data: WorkingHoursRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_scheduling_service(db).set_working_hours(
            professional_id,
            data.day_of_week,
            data.start_time,
            data.end_time,
            actor=current_user,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.delete(
    '/professionals/{professional_id}/working-hours/{day_of_week}',
    status_code=status.HTTP_204_NO_CONTENT,
)
def clear_working_hours(
    professional_id: int,
    day_of_week: int = Path(ge=0, le=6),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        build_scheduling_service(db).clear_working_hours(professional_id, day_of_week, actor=current_user)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/professionals/{professional_id}/services', response_model=list[ServiceResponse])
def list_services(professional_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return build_scheduling_service(db).list_services(professional_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    '/professionals/{professional_id}/services',
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_service(
    professional_id: int,
    data: CreateServiceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if current_user.role not in {PROFESSIONAL_ROLE, ADMIN_ROLE}:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only professionals can offer services.',
        )

    ensure_database_ready()

    try:
        return build_scheduling_service(db).create_service(
            professional_id,
            data.name,
            data.duration,
            data.price,
            actor=current_user,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
