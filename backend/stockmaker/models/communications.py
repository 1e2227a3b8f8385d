from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date

REMINDER_OVERDUE = "overdue"
REMINDER_DUE_TODAY = "due_today"
REMINDER_DUE_SOON = "due_soon"
REMINDER_TYPES = (REMINDER_OVERDUE, REMINDER_DUE_TODAY, REMINDER_DUE_SOON)


class ReminderRecord(db.Model):
    """
    One delivered payment-due reminder. Doubles as the dedup key: at most
    one row per sale, reminder type and calendar day.
    """
    __tablename__ = "reminder_records"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "reminder_type", "sent_on", name="uq_reminder_sale_type_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    merchant_id = db.Column(db.Integer, db.ForeignKey("merchants.id"), nullable=False, index=True)

    reminder_type = db.Column(db.String(16), nullable=False)
    email_sent_to = db.Column(db.String(255), nullable=True)
    channels = db.Column(db.String(64), nullable=True)  # comma-separated channel names that delivered

    sent_at = db.Column(db.DateTime(timezone=True), nullable=False)
    sent_on = db.Column(db.Date, nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "merchant_id": self.merchant_id,
            "reminder_type": self.reminder_type,
            "email_sent_to": self.email_sent_to,
            "channels": self.channels.split(",") if self.channels else [],
            "sent_at": to_utc_z(self.sent_at),
            "sent_on": to_iso_date(self.sent_on),
            "created_by_user_id": self.created_by_user_id,
        }


class Notification(db.Model):
    """In-app notification shown in a user's bell menu."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(16), nullable=False, default="info")  # info, warning, success, error
    link = db.Column(db.String(255), nullable=True)
    read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "link": self.link,
            "read": self.read,
            "created_at": to_utc_z(self.created_at),
        }
