"""
In-app notifications and the email outbox.

Notifications and outbox rows are added to the caller's session so they
commit (or roll back) together with the business change that produced them.
Delivery of queued email happens later in ``OutboxDispatcher``; a delivery
failure never reaches the request that queued the message.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from advoqat.config import EMAIL_MAX_ATTEMPTS
from advoqat.errors import NotFoundError, ValidationError
from advoqat.models import EmailOutbox, Notification, OutboxStatus, User, UserRole
from advoqat.services.email_service import EmailClient
from advoqat.services.identity import UserRef, require_user, resolve_user

logger = logging.getLogger(__name__)

INBOX_LIMIT = 50


class NotificationService:
    def __init__(self, db: Session):
        self.db = db

    def notify(
        self,
        target_ref: UserRef,
        type: str,
        title: str,
        message: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """Stage a notification for ``target_ref``; None if the user is unknown."""
        try:
            user = resolve_user(self.db, target_ref)
        except Exception as e:
            logger.error(f"Failed to resolve notification target {target_ref!r}: {e}")
            return None
        if user is None:
            logger.warning(f"Notification '{type}' dropped: user {target_ref!r} not found")
            return None

        notification = Notification(
            user_id=user.id,
            type=type,
            title=title,
            message=message,
            data=payload or {},
        )
        self.db.add(notification)
        return notification

    def notify_admins(self, type: str, title: str, message: str, payload: Optional[Dict[str, Any]] = None) -> int:
        admins = self.db.query(User).filter(User.role.in_([UserRole.ADMIN, UserRole.SUPER_ADMIN])).all()
        for admin in admins:
            self.notify(admin.id, type, title, message, payload)
        return len(admins)

    def queue_email(self, recipient: Optional[str], subject: str, html: str, event_type: str) -> Optional[EmailOutbox]:
        if not recipient:
            logger.debug(f"No recipient for '{event_type}' email, skipping")
            return None
        entry = EmailOutbox(
            recipient=recipient,
            subject=subject,
            html=html,
            event_type=event_type,
            status=OutboxStatus.PENDING,
            attempts=0,
        )
        self.db.add(entry)
        return entry

    # -------------------------------------------------
    # Inbox operations
    # -------------------------------------------------

    def create(self, target_ref: UserRef, type: str, title: str, message: str, payload=None) -> Notification:
        if not type or not title or not message:
            raise ValidationError("Missing required fields: userId, type, title, message")
        notification = self.notify(target_ref, type, title, message, payload)
        if notification is None:
            raise NotFoundError("User not found")
        self.db.commit()
        self.db.refresh(notification)
        return notification

    def list_for_user(self, user_ref: UserRef, limit: int = INBOX_LIMIT) -> List[Notification]:
        user = require_user(self.db, user_ref)
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    def unread_count(self, user_ref: UserRef) -> int:
        user = require_user(self.db, user_ref)
        return (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
            .count()
        )

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_ref: UserRef) -> int:
        user = require_user(self.db, user_ref)
        updated = (
            self.db.query(Notification)
            .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
            .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
        )
        self.db.commit()
        return updated

    def delete(self, notification_id: int):
        notification = self.db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        self.db.delete(notification)
        self.db.commit()


class OutboxDispatcher:
    """Drains pending outbox rows, retrying each up to ``max_attempts`` times."""

    def __init__(self, db: Session, email_client: EmailClient, max_attempts: int = EMAIL_MAX_ATTEMPTS):
        self.db = db
        self.email_client = email_client
        self.max_attempts = max_attempts

    def dispatch_pending(self, limit: int = 50) -> Dict[str, int]:
        result = {"sent": 0, "retrying": 0, "failed": 0}
        entries = (
            self.db.query(EmailOutbox)
            .filter(EmailOutbox.status == OutboxStatus.PENDING)
            .order_by(EmailOutbox.id)
            .limit(limit)
            .all()
        )
        for entry in entries:
            try:
                self.email_client.send(entry.recipient, entry.subject, entry.html)
            except Exception as e:
                entry.attempts = (entry.attempts or 0) + 1
                entry.last_error = str(e)
                if entry.attempts >= self.max_attempts:
                    entry.status = OutboxStatus.FAILED
                    result["failed"] += 1
                    logger.error(
                        f"Giving up on '{entry.event_type}' email to {entry.recipient} "
                        f"after {entry.attempts} attempts: {e}"
                    )
                else:
                    result["retrying"] += 1
                    logger.warning(
                        f"'{entry.event_type}' email to {entry.recipient} failed "
                        f"(attempt {entry.attempts}/{self.max_attempts}): {e}"
                    )
            else:
                entry.attempts = (entry.attempts or 0) + 1
                entry.status = OutboxStatus.SENT
                entry.sent_at = datetime.utcnow()
                entry.last_error = None
                result["sent"] += 1
            self.db.commit()
        return result


def drain_outbox(bind, email_client: EmailClient, limit: int = 50) -> Dict[str, int]:
    """Run one dispatcher pass in its own session; used as a background task."""
    db = Session(bind=bind)
    try:
        result = OutboxDispatcher(db, email_client).dispatch_pending(limit)
    finally:
        db.close()
    if any(result.values()):
        logger.info(f"Outbox drain: {result}")
    return result
