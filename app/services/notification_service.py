"""
Fire-and-forget notifications produced by booking/payment/verification events.

emit() is always called after the triggering operation has committed, and
never raises: a notification that cannot be stored is logged and dropped.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.notification import Notification, NotificationType, NotificationPriority

logger = logging.getLogger(__name__)


def _persist(db: Session, **fields) -> Notification:
    notification = Notification(**fields)
    db.add(notification)
    db.commit()
    return notification


def emit(
    db: Session,
    user_id: UUID,
    type: NotificationType,
    title: str,
    message: str,
    booking_id: Optional[UUID] = None,
    apartment_id: Optional[UUID] = None,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
) -> Optional[Notification]:
    try:
        notification = _persist(
            db,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            booking_id=booking_id,
            apartment_id=apartment_id,
            priority=priority,
        )
        logger.info(f"Notification '{type.value}' created for user {user_id}")
        return notification
    except Exception:
        logger.exception(f"Failed to create '{type.value}' notification for user {user_id}")
        db.rollback()
        return None


def list_notifications(db: Session, user_id: UUID, unread_only: bool = False, limit: int = 20):
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc()).limit(limit).all()


def mark_as_read(db: Session, user_id: UUID, notification_id: UUID) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not notification:
        raise NotFoundError("Notification", notification_id)
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, user_id: UUID) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated
