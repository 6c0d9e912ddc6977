from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from schoolsched.api.deps import get_current_user, get_db
from schoolsched.models.notification import Notification, NotificationType
from schoolsched.models.user import User
from schoolsched.schemas.notification import NotificationOut

router = APIRouter()


@router.get("", response_model=list[NotificationOut])
def list_notifications(
    notification_type: NotificationType | None = Query(default=None, alias="type"),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    query = (
        select(Notification)
        .where(Notification.user_id == current_user.id)
        .order_by(Notification.created_at.desc(), Notification.id)
    )
    if notification_type:
        query = query.where(Notification.notification_type == notification_type)
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    query = query.offset(offset).limit(limit)
    return list(db.execute(query).scalars())


@router.post("/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> NotificationOut:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
