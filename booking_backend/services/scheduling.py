"""
Availability & Booking Engine

Turns a professional's working hours and active bookings into bookable
time slots, admits new bookings against them, and drives the appointment
status lifecycle. Every public operation is a short read-decide-write chain
against ``AppointmentStore``; the engine keeps no state between calls.

Notifications are handed to ``dispatch`` after the write commits (a
FastAPI ``BackgroundTasks.add_task`` in the API) and can never fail the
booking operation that triggered them.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional

from booking_backend.core.exceptions import InvalidTransition, NotAuthorized, RecordNotFound, SlotUnavailable
from booking_backend.models.appointment import ALLOWED_TRANSITIONS, Appointment, AppointmentStatus
from booking_backend.models.professional import Service
from booking_backend.models.user import ADMIN_ROLE, User
from booking_backend.models.working_hours import WorkingHours
from booking_backend.services.notifications import deliver_notification
from booking_backend.services.store import AppointmentStore

logger = logging.getLogger(__name__)

SLOT_INCREMENT_MINUTES = 30
_REFERENCE_DAY = date(2000, 1, 1)


@dataclass(frozen=True)
class TimeSlot:
    """One bookable interval of a professional's day."""
    start_time: time
    end_time: time
    available: bool = True


def day_of_week(value: date) -> int:
    """Weekday number with Sunday as 0 and Saturday as 6."""
    return (value.weekday() + 1) % 7


def intervals_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    return start_a < end_b and start_b < end_a


def build_time_slots(
    window_start: time,
    window_end: time,
    bookings: Iterable,
    increment_minutes: int = SLOT_INCREMENT_MINUTES,
) -> list[TimeSlot]:
    """
    Partition ``[window_start, window_end)`` into fixed-size slots.

    A slot is unavailable when it overlaps the ``[start_time, end_time)`` of
    any booking given. Only slots that fit entirely inside the window are
    produced.
    """
    busy = [(booking.start_time, booking.end_time) for booking in bookings]
    step = timedelta(minutes=increment_minutes)
    current = datetime.combine(_REFERENCE_DAY, window_start.replace(second=0, microsecond=0))
    window_close = datetime.combine(_REFERENCE_DAY, window_end)

    slots: list[TimeSlot] = []
    while current + step <= window_close:
        slot_start = current.time()
        slot_end = (current + step).time()
        is_free = not any(
            intervals_overlap(slot_start, slot_end, busy_start, busy_end)
            for busy_start, busy_end in busy
        )
        slots.append(TimeSlot(start_time=slot_start, end_time=slot_end, available=is_free))
        current += step

    return slots


def _run_now(func: Callable, *args) -> None:
    func(*args)


class SchedulingService:
    """
    Slot computation and appointment lifecycle for one request.

    Args:
        store: Record store bound to the request's database session
        notifier: Object exposing ``notify_booking_created``,
            ``notify_booking_status_changed`` and ``notify_booking_rescheduled``;
            ``None`` disables notifications
        dispatch: Callable used to schedule notification delivery; defaults
            to delivering inline
    """

    def __init__(
        self,
        store: AppointmentStore,
        notifier=None,
        dispatch: Optional[Callable] = None,
    ):
        self.store = store
        self.notifier = notifier
        self._dispatch = dispatch or _run_now

    # Availability

    def get_available_time_slots(
        self,
        professional_id: int,
        on_date: date,
        exclude_appointment_id: Optional[int] = None,
    ) -> list[TimeSlot]:
        working_hours = self.store.get_working_hours(professional_id, day_of_week(on_date))
        if working_hours is None:
            return []

        bookings = self.store.list_active_bookings(
            professional_id,
            on_date,
            exclude_appointment_id=exclude_appointment_id,
        )
        return build_time_slots(working_hours.start_time, working_hours.end_time, bookings)

    def is_slot_available(
        self,
        professional_id: int,
        on_date: date,
        start_time: time,
        exclude_appointment_id: Optional[int] = None,
    ) -> bool:
        slots = self.get_available_time_slots(
            professional_id,
            on_date,
            exclude_appointment_id=exclude_appointment_id,
        )
        return _slot_is_open(slots, start_time)

    def _ensure_interval_bookable(
        self,
        professional_id: int,
        on_date: date,
        start_time: time,
        duration_minutes: int,
        exclude_appointment_id: Optional[int] = None,
    ) -> time:
        slots = self.get_available_time_slots(
            professional_id,
            on_date,
            exclude_appointment_id=exclude_appointment_id,
        )
        if not _slot_is_open(slots, start_time):
            raise SlotUnavailable("This time is not available.")

        end_time = _end_time_for(on_date, start_time, duration_minutes)
        covered = [
            slot for slot in slots
            if intervals_overlap(slot.start_time, slot.end_time, start_time, end_time)
        ]
        if not covered or covered[-1].end_time < end_time:
            raise SlotUnavailable("The service does not fit within working hours.")
        if not all(slot.available for slot in covered):
            raise SlotUnavailable("The service overlaps another appointment.")

        return end_time

    # Booking lifecycle

    def create_appointment(
        self,
        user_id: int,
        professional_id: int,
        service_id: int,
        on_date: date,
        start_time: time,
        notes: Optional[str] = None,
        actor: Optional[User] = None,
    ) -> Appointment:
        if actor is not None and actor.role != ADMIN_ROLE and actor.id != user_id:
            raise NotAuthorized("You can only book appointments for yourself.")

        service = self.store.get_service(service_id)
        if service is None or service.professional_id != professional_id:
            raise RecordNotFound("Service not found for this professional.")

        start_time = start_time.replace(second=0, microsecond=0)
        end_time = self._ensure_interval_bookable(professional_id, on_date, start_time, service.duration)

        appointment = self.store.insert_booking(
            user_id=user_id,
            professional_id=professional_id,
            service_id=service_id,
            date=on_date,
            start_time=start_time,
            end_time=end_time,
            status=AppointmentStatus.SCHEDULED.value,
            notes=notes,
        )
        logger.info(
            f"Created appointment {appointment.id} for user {user_id} with professional "
            f"{professional_id} on {on_date} at {start_time:%H:%M}"
        )

        self._notify("notify_booking_created", appointment)
        return appointment

    def reschedule_appointment(
        self,
        appointment_id: int,
        new_date: date,
        new_start_time: time,
        actor: Optional[User] = None,
    ) -> Appointment:
        appointment = self.get_appointment(appointment_id, actor=actor)
        if not appointment.is_active:
            raise InvalidTransition(appointment.status, "rescheduled")

        duration_minutes = self.store.get_service_duration(appointment.service_id)
        new_start_time = new_start_time.replace(second=0, microsecond=0)
        new_end_time = self._ensure_interval_bookable(
            appointment.professional_id,
            new_date,
            new_start_time,
            duration_minutes,
            exclude_appointment_id=appointment.id,
        )

        previous_date = appointment.date
        previous_start_time = appointment.start_time
        updated = self.store.update_booking(
            appointment.id,
            date=new_date,
            start_time=new_start_time,
            end_time=new_end_time,
        )
        logger.info(
            f"Rescheduled appointment {appointment.id} from {previous_date} {previous_start_time:%H:%M} "
            f"to {new_date} {new_start_time:%H:%M}"
        )

        self._notify("notify_booking_rescheduled", updated, previous_date, previous_start_time)
        return updated

    def update_appointment_status(
        self,
        appointment_id: int,
        new_status,
        actor: Optional[User] = None,
    ) -> Appointment:
        return self._transition(appointment_id, new_status, actor=actor)

    def cancel_appointment(
        self,
        appointment_id: int,
        reason: Optional[str] = None,
        actor: Optional[User] = None,
    ) -> Appointment:
        return self._transition(
            appointment_id,
            AppointmentStatus.CANCELLED,
            actor=actor,
            reason=reason,
        )

    def _transition(
        self,
        appointment_id: int,
        new_status,
        actor: Optional[User] = None,
        reason: Optional[str] = None,
    ) -> Appointment:
        appointment = self.get_appointment(appointment_id, actor=actor)
        current_status = appointment.status_value

        try:
            requested_status = AppointmentStatus(new_status)
        except ValueError:
            raise InvalidTransition(current_status.value, str(new_status)) from None

        if requested_status not in ALLOWED_TRANSITIONS[current_status]:
            raise InvalidTransition(current_status.value, requested_status.value)

        fields = {"status": requested_status.value}
        if reason:
            cancellation_note = f"Cancelled: {reason}"
            fields["notes"] = f"{appointment.notes}\n{cancellation_note}" if appointment.notes else cancellation_note

        updated = self.store.update_booking(appointment.id, **fields)
        logger.info(
            f"Appointment {appointment.id} moved from {current_status.value} to {requested_status.value}"
        )

        self._notify("notify_booking_status_changed", updated, current_status, requested_status)
        return updated

    # Reads

    def get_appointment(self, appointment_id: int, actor: Optional[User] = None) -> Appointment:
        appointment = self.store.get_appointment(appointment_id)
        if appointment is None:
            raise RecordNotFound("Appointment not found.")
        self._authorize_party(appointment, actor)
        return appointment

    def list_client_appointments(self, user_id: int) -> list[Appointment]:
        return self.store.list_client_appointments(user_id)

    def list_professional_appointments(
        self,
        professional_id: int,
        actor: Optional[User] = None,
    ) -> list[Appointment]:
        self.authorize_professional(professional_id, actor)
        return self.store.list_professional_appointments(professional_id)

    # Professional settings

    def list_working_hours(self, professional_id: int) -> list[WorkingHours]:
        return self.store.list_working_hours(professional_id)

    def set_working_hours(
        self,
        professional_id: int,
        weekday: int,
        start_time: time,
        end_time: time,
        actor: Optional[User] = None,
    ) -> WorkingHours:
        self.authorize_professional(professional_id, actor)
        if start_time >= end_time:
            raise ValueError("Working hours must start before they end.")
        return self.store.upsert_working_hours(professional_id, weekday, start_time, end_time)

    def clear_working_hours(self, professional_id: int, weekday: int, actor: Optional[User] = None) -> None:
        self.authorize_professional(professional_id, actor)
        if not self.store.delete_working_hours(professional_id, weekday):
            raise RecordNotFound("No working hours set for that day.")

    def list_services(self, professional_id: int) -> list[Service]:
        return self.store.list_services(professional_id)

    def create_service(
        self,
        professional_id: int,
        name: str,
        duration: int,
        price: Decimal,
        actor: Optional[User] = None,
    ) -> Service:
        self.authorize_professional(professional_id, actor)
        return self.store.create_service(professional_id, name, duration, price)

    # Authorization

    def authorize_professional(self, professional_id: int, actor: Optional[User]) -> None:
        professional = self.store.get_professional(professional_id)
        if professional is None:
            raise RecordNotFound("Professional not found.")
        if actor is None or actor.role == ADMIN_ROLE:
            return
        if professional.user_id != actor.id:
            raise NotAuthorized("Only this professional can manage these settings.")

    def _authorize_party(self, appointment: Appointment, actor: Optional[User]) -> None:
        if actor is None or actor.role == ADMIN_ROLE:
            return
        if appointment.user_id == actor.id:
            return
        professional = self.store.get_professional(appointment.professional_id)
        if professional is not None and professional.user_id == actor.id:
            return
        raise NotAuthorized("Only the client or the professional can act on this appointment.")

    def _notify(self, method_name: str, *args) -> None:
        if self.notifier is None:
            return
        self._dispatch(deliver_notification, getattr(self.notifier, method_name), *args)


def _slot_is_open(slots: list[TimeSlot], start_time: time) -> bool:
    return any(slot.start_time == start_time and slot.available for slot in slots)


def _end_time_for(on_date: date, start_time: time, duration_minutes: int) -> time:
    end = datetime.combine(on_date, start_time) + timedelta(minutes=duration_minutes)
    if end.date() != on_date:
        raise SlotUnavailable("The service would run past midnight.")
    return end.time()
