from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from advoqat.auth.dependencies import get_current_user, require_admin
from advoqat.database import get_db
from advoqat.dependencies import ADMIN_ROLES, ensure_self_or_admin, get_notification_service
from advoqat.errors import AuthorizationError, NotFoundError
from advoqat.models import Notification, User
from advoqat.notifications.schemas import (
    MarkAllReadResponse, NotificationCreate, NotificationResponse, UnreadCount
)
from advoqat.services.notification_service import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


def _owned(db: Session, notification_id: int, user: User) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    if notification.user_id != user.id and user.role not in ADMIN_ROLES:
        raise AuthorizationError("You can only manage your own notifications")
    return notification

@router.post("/", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
def create_notification(
    notification: NotificationCreate,
    current_user: User = Depends(require_admin()),
    service: NotificationService = Depends(get_notification_service),
):
    """System/admin notification to a single user."""
    return service.create(
        notification.user_id, notification.type, notification.title, notification.message, notification.data
    )

@router.get("/user/{ref}", response_model=List[NotificationResponse])
def list_notifications(
    ref: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    """Latest notifications first."""
    user = ensure_self_or_admin(db, ref, current_user)
    return service.list_for_user(user.id)

@router.get("/user/{ref}/unread-count", response_model=UnreadCount)
def get_unread_count(
    ref: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    user = ensure_self_or_admin(db, ref, current_user)
    return UnreadCount(count=service.unread_count(user.id))

@router.patch("/user/{ref}/read-all", response_model=MarkAllReadResponse)
def mark_all_read(
    ref: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    user = ensure_self_or_admin(db, ref, current_user)
    return MarkAllReadResponse(updated=service.mark_all_read(user.id))

@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    _owned(db, notification_id, current_user)
    return service.mark_read(notification_id)

@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: NotificationService = Depends(get_notification_service),
):
    _owned(db, notification_id, current_user)
    service.delete(notification_id)
