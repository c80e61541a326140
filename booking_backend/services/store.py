"""
Record store for the booking engine.

Wraps a SQLAlchemy session behind the handful of lookups and writes the
scheduling logic needs. Every database failure is rolled back and re-raised
as ``StoreError``; a hit on the active-slot unique index is reported as
``SlotUnavailable`` so a lost booking race looks the same as a failed
availability check.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core.exceptions import RecordNotFound, SlotUnavailable, StoreError
from booking_backend.models.appointment import ACTIVE_STATUSES, Appointment
from booking_backend.models.professional import Professional, Service
from booking_backend.models.working_hours import WorkingHours

logger = logging.getLogger(__name__)

_ACTIVE_STATUS_VALUES = [status.value for status in ACTIVE_STATUSES]


class AppointmentStore:
    """Row-level access to professionals, services, schedules and appointments."""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _operation(self, description: str):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(f"Record store failed while trying to {description}: {exc}")
            raise StoreError(f"Record store failed while trying to {description}.") from exc

    # Working hours

    def get_working_hours(self, professional_id: int, day_of_week: int) -> Optional[WorkingHours]:
        with self._operation("load working hours"):
            return self.db.query(WorkingHours).filter(
                WorkingHours.professional_id == professional_id,
                WorkingHours.day_of_week == day_of_week,
            ).first()

    def list_working_hours(self, professional_id: int) -> list[WorkingHours]:
        with self._operation("list working hours"):
            return self.db.query(WorkingHours).filter(
                WorkingHours.professional_id == professional_id,
            ).order_by(WorkingHours.day_of_week.asc()).all()

    def upsert_working_hours(
        self,
        professional_id: int,
        day_of_week: int,
        start_time: time,
        end_time: time,
    ) -> WorkingHours:
        with self._operation("save working hours"):
            working_hours = self.db.query(WorkingHours).filter(
                WorkingHours.professional_id == professional_id,
                WorkingHours.day_of_week == day_of_week,
            ).first()

            if working_hours is None:
                working_hours = WorkingHours(professional_id=professional_id, day_of_week=day_of_week)
                self.db.add(working_hours)

            working_hours.start_time = start_time
            working_hours.end_time = end_time
            self.db.commit()
            self.db.refresh(working_hours)
            return working_hours

    def delete_working_hours(self, professional_id: int, day_of_week: int) -> bool:
        with self._operation("delete working hours"):
            deleted = self.db.query(WorkingHours).filter(
                WorkingHours.professional_id == professional_id,
                WorkingHours.day_of_week == day_of_week,
            ).delete(synchronize_session=False)
            self.db.commit()
            return deleted > 0

    # Professionals and services

    def get_professional(self, professional_id: int) -> Optional[Professional]:
        with self._operation("load professional"):
            return self.db.query(Professional).filter(Professional.id == professional_id).first()

    def get_service(self, service_id: int) -> Optional[Service]:
        with self._operation("load service"):
            return self.db.query(Service).filter(Service.id == service_id).first()

    def get_service_duration(self, service_id: int) -> int:
        service = self.get_service(service_id)
        if service is None:
            raise RecordNotFound("Service not found.")
        return service.duration

    def list_services(self, professional_id: int) -> list[Service]:
        with self._operation("list services"):
            return self.db.query(Service).filter(
                Service.professional_id == professional_id,
            ).order_by(Service.name.asc()).all()

    def create_service(self, professional_id: int, name: str, duration: int, price: Decimal) -> Service:
        with self._operation("create service"):
            service = Service(professional_id=professional_id, name=name, duration=duration, price=price)
            self.db.add(service)
            self.db.commit()
            self.db.refresh(service)
            return service

    # Appointments

    def get_appointment(self, appointment_id: int) -> Optional[Appointment]:
        with self._operation("load appointment"):
            return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def list_active_bookings(
        self,
        professional_id: int,
        on_date: date,
        exclude_appointment_id: Optional[int] = None,
    ) -> list[Appointment]:
        with self._operation("list active bookings"):
            query = self.db.query(Appointment).filter(
                Appointment.professional_id == professional_id,
                Appointment.date == on_date,
                Appointment.status.in_(_ACTIVE_STATUS_VALUES),
            )
            if exclude_appointment_id is not None:
                query = query.filter(Appointment.id != exclude_appointment_id)
            return query.order_by(Appointment.start_time.asc()).all()

    def list_client_appointments(self, user_id: int) -> list[Appointment]:
        with self._operation("list client appointments"):
            return self.db.query(Appointment).filter(
                Appointment.user_id == user_id,
            ).order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()

    def list_professional_appointments(self, professional_id: int) -> list[Appointment]:
        with self._operation("list professional appointments"):
            return self.db.query(Appointment).filter(
                Appointment.professional_id == professional_id,
            ).order_by(Appointment.date.asc(), Appointment.start_time.asc()).all()

    def insert_booking(self, **fields) -> Appointment:
        with self._operation("create appointment"):
            now = datetime.now()
            appointment = Appointment(created_at=now, updated_at=now, **fields)
            self.db.add(appointment)
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                logger.info(
                    f"Active slot already taken for professional {fields.get('professional_id')} "
                    f"on {fields.get('date')} at {fields.get('start_time')}"
                )
                raise SlotUnavailable("This time is already booked.") from exc
            self.db.refresh(appointment)
            return appointment

    def update_booking(self, appointment_id: int, **fields) -> Appointment:
        with self._operation("update appointment"):
            appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
            if appointment is None:
                raise RecordNotFound("Appointment not found.")

            for key, value in fields.items():
                setattr(appointment, key, value)
            appointment.updated_at = datetime.now()

            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise SlotUnavailable("This time is already booked.") from exc
            self.db.refresh(appointment)
            return appointment
