"""
Booking notifications

Writes in-app notification rows for both parties of an appointment and
keeps the appointment's pending reminders in step with its schedule.
Delivery is best-effort: ``deliver_notification`` retries a failing send a
few times, logs the final failure and returns.
"""

import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.core.exceptions import RecordNotFound, StoreError
from booking_backend.database import SessionLocal
from booking_backend.models.appointment import Appointment, AppointmentStatus
from booking_backend.models.notification import REMINDER_KIND, Notification
from booking_backend.models.professional import Professional

logger = logging.getLogger(__name__)

REMINDER_OFFSETS = (timedelta(hours=24), timedelta(hours=2))

STATUS_MESSAGES = {
    AppointmentStatus.CONFIRMED: ("Appointment confirmed", "Your appointment on {when} is confirmed."),
    AppointmentStatus.CANCELLED: ("Appointment cancelled", "The appointment on {when} was cancelled."),
    AppointmentStatus.COMPLETED: ("Appointment completed", "The appointment on {when} is complete. Thank you!"),
    AppointmentStatus.SCHEDULED: ("Appointment scheduled", "The appointment on {when} is scheduled."),
}


def deliver_notification(send: Callable, *args) -> bool:
    attempts = max(1, config.NOTIFICATION_MAX_ATTEMPTS)
    name = getattr(send, "__name__", repr(send))

    for attempt in range(1, attempts + 1):
        try:
            send(*args)
            return True
        except Exception:
            if attempt == attempts:
                logger.exception(f"Notification {name} failed after {attempts} attempts")
            else:
                logger.warning(f"Notification {name} failed (attempt {attempt}/{attempts}), retrying")

    return False


def _describe(on_date: date, start_time: time) -> str:
    return f"{on_date:%d/%m/%Y} at {start_time:%H:%M}"


class DatabaseNotifier:
    """Notification inbox writer that runs in its own database session."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.session_factory = session_factory
        self.clock = clock

    def notify_booking_created(self, appointment: Appointment) -> None:
        when = _describe(appointment.date, appointment.start_time)
        with self._session() as db:
            self._notify_parties(
                db,
                appointment,
                kind="booking_created",
                title="Appointment requested",
                body=f"A new appointment was booked for {when}.",
            )
            self._schedule_reminders(db, appointment)

    def notify_booking_status_changed(
        self,
        appointment: Appointment,
        old_status: AppointmentStatus,
        new_status: AppointmentStatus,
    ) -> None:
        title, template = STATUS_MESSAGES[AppointmentStatus(new_status)]
        when = _describe(appointment.date, appointment.start_time)
        with self._session() as db:
            self._notify_parties(
                db,
                appointment,
                kind=f"booking_{AppointmentStatus(new_status).value}",
                title=title,
                body=template.format(when=when),
            )
            if AppointmentStatus(new_status) in (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED):
                cleared = self._clear_pending_reminders(db, appointment.id)
                logger.debug(f"Cleared {cleared} reminders for appointment {appointment.id}")

    def notify_booking_rescheduled(
        self,
        appointment: Appointment,
        previous_date: date,
        previous_start_time: time,
    ) -> None:
        before = _describe(previous_date, previous_start_time)
        after = _describe(appointment.date, appointment.start_time)
        with self._session() as db:
            self._notify_parties(
                db,
                appointment,
                kind="booking_rescheduled",
                title="Appointment rescheduled",
                body=f"The appointment on {before} moved to {after}.",
            )
            self._clear_pending_reminders(db, appointment.id)
            self._schedule_reminders(db, appointment)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _notify_parties(self, db: Session, appointment: Appointment, kind: str, title: str, body: str) -> None:
        now = self.clock()
        for user_id in self._recipients(db, appointment):
            db.add(
                Notification(
                    user_id=user_id,
                    appointment_id=appointment.id,
                    kind=kind,
                    title=title,
                    body=body,
                    read=False,
                    scheduled_for=now,
                    created_at=now,
                )
            )

    def _recipients(self, db: Session, appointment: Appointment) -> list[int]:
        recipients = [appointment.user_id]
        professional = db.query(Professional).filter(Professional.id == appointment.professional_id).first()
        if professional is not None and professional.user_id not in recipients:
            recipients.append(professional.user_id)
        return [user_id for user_id in recipients if user_id is not None]

    def _schedule_reminders(self, db: Session, appointment: Appointment) -> None:
        now = self.clock()
        starts_at = datetime.combine(appointment.date, appointment.start_time)
        when = _describe(appointment.date, appointment.start_time)

        for offset in REMINDER_OFFSETS:
            remind_at = starts_at - offset
            if remind_at <= now:
                continue
            db.add(
                Notification(
                    user_id=appointment.user_id,
                    appointment_id=appointment.id,
                    kind=REMINDER_KIND,
                    title="Appointment reminder",
                    body=f"Reminder: you have an appointment on {when}.",
                    read=False,
                    scheduled_for=remind_at,
                    created_at=now,
                )
            )

    def _clear_pending_reminders(self, db: Session, appointment_id: int) -> int:
        return db.query(Notification).filter(
            Notification.appointment_id == appointment_id,
            Notification.kind == REMINDER_KIND,
            Notification.read.is_(False),
        ).delete(synchronize_session=False)


def list_inbox(db: Session, user_id: int, now: Optional[datetime] = None) -> list[Notification]:
    """Notifications for a user that are due, newest first."""
    now = now or datetime.now()
    return db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.scheduled_for <= now,
    ).order_by(Notification.scheduled_for.desc(), Notification.id.desc()).all()


def mark_notification_read(db: Session, notification_id: int, user_id: int) -> Notification:
    try:
        notification = db.query(Notification).filter(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        ).first()
        if notification is None:
            raise RecordNotFound("Notification not found.")

        notification.read = True
        db.commit()
        db.refresh(notification)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(f"Record store failed while trying to update notification {notification_id}: {exc}")
        raise StoreError("Record store failed while trying to update notification.") from exc
    return notification
