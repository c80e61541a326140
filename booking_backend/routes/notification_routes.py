from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.auth.dependencies import get_current_user
from booking_backend.core.exceptions import SchedulingError
from booking_backend.database import get_db
from booking_backend.models.user import User
from booking_backend.routes.common import DATABASE_UNAVAILABLE_DETAIL, ensure_database_ready, to_http_exception
from booking_backend.services.notifications import list_inbox, mark_notification_read

router = APIRouter(tags=['notifications'])


class NotificationResponse(BaseModel):
    id: int
    appointment_id: int | None = None
    kind: str
    title: str | None = None
    body: str | None = None
    read: bool
    scheduled_for: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get('', response_model=list[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        notifications = list_inbox(db, current_user.id)
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    if unread_only:
        return [notification for notification in notifications if not notification.read]
    return notifications


@router.post('/{notification_id}/read', response_model=NotificationResponse)
def read_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return mark_notification_read(db, notification_id, current_user.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
