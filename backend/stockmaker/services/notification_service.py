# Overview: In-app notifications (the dashboard bell).

from __future__ import annotations

from ..extensions import db
from ..models import Notification
from .auth_service import list_admins

NOTIFICATION_TYPES = ("info", "warning", "success", "error")


class NotificationError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def create_notification(*, user_id: int, title: str, message: str, type: str = "info", link: str | None = None) -> Notification:
    """Stage a notification; the caller commits."""
    if type not in NOTIFICATION_TYPES:
        raise NotificationError(f"type must be one of: {', '.join(NOTIFICATION_TYPES)}")
    notification = Notification(user_id=user_id, title=title, message=message, type=type, link=link, read=False)
    db.session.add(notification)
    return notification


def notify_admins(*, title: str, message: str, type: str = "info", link: str | None = None) -> int:
    admins = list_admins()
    for admin in admins:
        create_notification(user_id=admin.id, title=title, message=message, type=type, link=link)
    return len(admins)


def list_for_user(user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(user_id: int) -> int:
    return (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read.is_(False))
        .count()
    )


def mark_read(notification_id: int, user_id: int) -> Notification:
    notification = (
        db.session.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if not notification:
        raise NotificationError("Notification not found", status_code=404)
    notification.read = True
    db.session.commit()
    return notification


def mark_all_read(user_id: int) -> int:
    updated = (
        db.session.query(Notification)
        .filter(Notification.user_id == user_id, Notification.read.is_(False))
        .update({Notification.read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated
