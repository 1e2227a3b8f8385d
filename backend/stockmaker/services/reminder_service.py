# Overview: Payment-due reminders: the scheduled dispatch batch, manual logging and history.

"""
Reminder Dispatch

The batch scans unpaid sales that are overdue or due within the lookahead
window, marks past-due sales overdue, and sends one reminder per sale,
reminder type and day through every configured channel. A reminder
record is written only when at least one channel delivered, so a run in
which every provider failed is retried by the next run.

Each sale is committed on its own; a database error on one sale is
logged and counted and the batch moves on.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from urllib.parse import quote

import httpx
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Merchant, Product, ReminderRecord, Sale
from ..models.communications import (
    REMINDER_DUE_SOON,
    REMINDER_DUE_TODAY,
    REMINDER_OVERDUE,
    REMINDER_TYPES,
)
from ..models.sales import STATUS_OVERDUE, STATUS_PARTIAL, STATUS_PENDING
from ..time_utils import today as current_day, utcnow
from ..validation import ConflictError, ValidationError
from .concurrency import lock_for_update
from .merchant_service import refresh_aggregates
from .notification_channels import NotificationChannel, build_channels, normalize_phone
from .notification_service import notify_admins

logger = logging.getLogger(__name__)

REMINDABLE_STATUSES = (STATUS_PENDING, STATUS_PARTIAL, STATUS_OVERDUE)
HISTORY_LIMIT = 50


class ReminderError(Exception):
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


@dataclass
class ChannelStats:
    attempted: int = 0
    succeeded: int = 0

    def to_dict(self) -> dict:
        return {"attempted": self.attempted, "succeeded": self.succeeded}


@dataclass
class ReminderBatchResult:
    run_date: date
    lookahead_days: int
    scanned: int = 0
    sent: int = 0
    skipped_duplicates: int = 0
    skipped_no_recipient: int = 0
    marked_overdue: int = 0
    failed: int = 0
    errors: int = 0
    channels: dict[str, ChannelStats] = field(default_factory=dict)
    details: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "run_date": self.run_date.isoformat(),
            "lookahead_days": self.lookahead_days,
            "scanned": self.scanned,
            "sent": self.sent,
            "skipped_duplicates": self.skipped_duplicates,
            "skipped_no_recipient": self.skipped_no_recipient,
            "marked_overdue": self.marked_overdue,
            "failed": self.failed,
            "errors": self.errors,
            "channels": {name: stats.to_dict() for name, stats in self.channels.items()},
            "details": self.details,
        }


@dataclass(frozen=True)
class ReminderMessage:
    subject: str
    text: str
    html: str


def classify_reminder(due_date: date, today: date, lookahead_days: int) -> tuple[str, int] | None:
    """
    (reminder_type, days_until_due) for a due date, or None when the due
    date is beyond the lookahead window.
    """
    days = (due_date - today).days
    if days < 0:
        return REMINDER_OVERDUE, days
    if days == 0:
        return REMINDER_DUE_TODAY, days
    if days <= lookahead_days:
        return REMINDER_DUE_SOON, days
    return None


def format_money(cents: int, symbol: str = "₹") -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{symbol}{cents // 100:,}.{cents % 100:02d}"


def build_reminder_message(
    *,
    sale: Sale,
    merchant: Merchant,
    product: Product | None,
    reminder_type: str,
    days: int,
    shop_name: str,
    shop_phone: str = "",
    currency: str = "₹",
) -> ReminderMessage:
    amount = format_money(sale.remaining_amount_cents, currency)
    item = product.name if product else f"sale #{sale.id}"
    due = sale.due_date.strftime("%d %b %Y")

    if reminder_type == REMINDER_OVERDUE:
        late = abs(days)
        subject = f"Payment overdue: {amount} for {item}"
        when = f"was due on {due} and is {late} day{'s' if late != 1 else ''} overdue"
        ask = "Please clear the balance at the earliest."
    elif reminder_type == REMINDER_DUE_TODAY:
        subject = f"Payment due today: {amount} for {item}"
        when = "is due today"
        ask = "Please arrange the payment today."
    else:
        subject = f"Payment reminder: {amount} due on {due}"
        when = f"is due on {due} (in {days} day{'s' if days != 1 else ''})"
        ask = "Kindly keep the payment ready."

    signature = shop_name + (f" ({shop_phone})" if shop_phone else "")
    text = (
        f"Dear {merchant.name}, your pending payment of {amount} for {item} "
        f"(qty {sale.quantity}) {when}. {ask} - {signature}"
    )
    body = (
        f"<p>Dear {html.escape(merchant.name)},</p>"
        f"<p>Your pending payment of <strong>{html.escape(amount)}</strong> for "
        f"{html.escape(item)} (qty {sale.quantity}) {html.escape(when)}.</p>"
        f"<p>{html.escape(ask)}</p>"
        f"<p>Total bill: {html.escape(format_money(sale.total_amount_cents, currency))}<br>"
        f"Paid so far: {html.escape(format_money(sale.paid_amount_cents, currency))}</p>"
        f"<p>Regards,<br>{html.escape(signature)}</p>"
    )
    return ReminderMessage(subject=subject, text=text, html=body)


def _message_for(sale: Sale, reminder_type: str, days: int) -> ReminderMessage:
    config = current_app.config
    return build_reminder_message(
        sale=sale,
        merchant=sale.merchant,
        product=sale.product,
        reminder_type=reminder_type,
        days=days,
        shop_name=config["SHOP_NAME"],
        shop_phone=config.get("SHOP_PHONE", ""),
        currency=config["CURRENCY_SYMBOL"],
    )


def already_reminded(sale_id: int, reminder_type: str, on_day: date) -> bool:
    return (
        db.session.query(ReminderRecord.id)
        .filter(
            ReminderRecord.sale_id == sale_id,
            ReminderRecord.reminder_type == reminder_type,
            ReminderRecord.sent_on == on_day,
        )
        .first()
        is not None
    )


def _mark_overdue(sale: Sale, today: date) -> bool:
    """Flip an unpaid past-due sale to overdue. Does not commit."""
    if sale.payment_status == STATUS_OVERDUE or sale.remaining_amount_cents <= 0 or sale.due_date >= today:
        return False
    sale.payment_status = STATUS_OVERDUE
    refresh_aggregates(sale.merchant, today)
    return True


def mark_overdue_sales(today: date | None = None) -> int:
    """Mark every unpaid past-due pending/partial sale overdue, in one commit."""
    today = today or current_day()
    sales = lock_for_update(
        db.session.query(Sale).filter(
            Sale.payment_status.in_([STATUS_PENDING, STATUS_PARTIAL]),
            Sale.remaining_amount_cents > 0,
            Sale.due_date < today,
        )
    ).all()
    marked = sum(1 for sale in sales if _mark_overdue(sale, today))
    db.session.commit()
    if marked:
        logger.info("Marked %d sale(s) overdue", marked)
    return marked


def _candidate_sale_ids(today: date, lookahead_days: int) -> list[int]:
    horizon = today + timedelta(days=lookahead_days)
    rows = (
        db.session.query(Sale.id)
        .filter(
            Sale.payment_status.in_(REMINDABLE_STATUSES),
            Sale.remaining_amount_cents > 0,
            Sale.due_date <= horizon,
        )
        .order_by(Sale.due_date.asc(), Sale.id.asc())
        .all()
    )
    return [row.id for row in rows]


def _dispatch(channels: list[NotificationChannel], merchant: Merchant, message: ReminderMessage, result: ReminderBatchResult) -> tuple[list[str], dict[str, str]]:
    delivered: list[str] = []
    recipients: dict[str, str] = {}
    for channel in channels:
        recipient = channel.recipient_for(merchant)
        if not recipient:
            continue
        recipients[channel.name] = recipient
        stats = result.channels.setdefault(channel.name, ChannelStats())
        stats.attempted += 1
        if channel.send(recipient, message.subject, message.text, message.html):
            stats.succeeded += 1
            delivered.append(channel.name)
    return delivered, recipients


def _process_sale(sale_id: int, today: date, lookahead_days: int, channels: list[NotificationChannel], result: ReminderBatchResult) -> None:
    sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
    if not sale or sale.remaining_amount_cents <= 0 or sale.payment_status not in REMINDABLE_STATUSES:
        db.session.rollback()
        return

    classified = classify_reminder(sale.due_date, today, lookahead_days)
    if classified is None:
        db.session.rollback()
        return
    reminder_type, days = classified
    detail = {"sale_id": sale.id, "merchant_id": sale.merchant_id, "reminder_type": reminder_type}

    if _mark_overdue(sale, today):
        db.session.commit()
        result.marked_overdue += 1
        detail["marked_overdue"] = True

    if already_reminded(sale.id, reminder_type, today):
        result.skipped_duplicates += 1
        detail["outcome"] = "duplicate"
        result.details.append(detail)
        db.session.rollback()
        return

    merchant = sale.merchant
    message = _message_for(sale, reminder_type, days)
    delivered, recipients = _dispatch(channels, merchant, message, result)
    detail["channels"] = delivered

    if not recipients:
        result.skipped_no_recipient += 1
        detail["outcome"] = "no_recipient"
        result.details.append(detail)
        db.session.rollback()
        return

    if not delivered:
        result.failed += 1
        detail["outcome"] = "failed"
        result.details.append(detail)
        db.session.rollback()
        logger.warning("Every channel failed for sale %s (%s); will retry next run", sale.id, reminder_type)
        return

    now = utcnow()
    db.session.add(ReminderRecord(
        sale_id=sale.id,
        merchant_id=sale.merchant_id,
        reminder_type=reminder_type,
        email_sent_to=recipients.get("email") if "email" in delivered else recipients.get(delivered[0]),
        channels=",".join(delivered),
        sent_at=now,
        sent_on=today,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        # A concurrent run recorded the same sale/type/day first
        db.session.rollback()
        result.skipped_duplicates += 1
        detail["outcome"] = "duplicate"
        result.details.append(detail)
        return

    result.sent += 1
    detail["outcome"] = "sent"
    result.details.append(detail)


def _run(today: date, lookahead_days: int, channels: list[NotificationChannel]) -> ReminderBatchResult:
    result = ReminderBatchResult(run_date=today, lookahead_days=lookahead_days)
    for channel in channels:
        result.channels[channel.name] = ChannelStats()

    for sale_id in _candidate_sale_ids(today, lookahead_days):
        result.scanned += 1
        try:
            _process_sale(sale_id, today, lookahead_days, channels, result)
        except Exception:
            db.session.rollback()
            result.errors += 1
            result.details.append({"sale_id": sale_id, "outcome": "error"})
            logger.exception("Reminder processing failed for sale %s", sale_id)

    if result.sent or result.failed or result.marked_overdue:
        notify_admins(
            title="Payment reminders sent",
            message=(
                f"{result.sent} reminder(s) sent, {result.failed} failed, "
                f"{result.marked_overdue} sale(s) marked overdue."
            ),
            type="warning" if result.failed or result.errors else "success",
            link="/reminders",
        )
        db.session.commit()

    logger.info(
        "Reminder batch %s: scanned=%d sent=%d duplicates=%d failed=%d errors=%d",
        today.isoformat(), result.scanned, result.sent, result.skipped_duplicates, result.failed, result.errors,
    )
    return result


def run_reminder_batch(
    *,
    today: date | None = None,
    lookahead_days: int | None = None,
    channels: list[NotificationChannel] | None = None,
) -> ReminderBatchResult:
    """
    Scheduled entry point. With no explicit channels, every provider that
    has credentials in the app config is used.
    """
    today = today or current_day()
    if lookahead_days is None:
        lookahead_days = current_app.config["REMINDER_LOOKAHEAD_DAYS"]
    if lookahead_days < 0:
        raise ReminderError("lookahead_days must be >= 0")

    if channels is not None:
        return _run(today, lookahead_days, channels)

    timeout = current_app.config.get("NOTIFICATION_HTTP_TIMEOUT", 10.0)
    with httpx.Client(timeout=timeout) as client:
        configured = build_channels(current_app.config, client)
        if not configured:
            logger.warning("No reminder channels configured; only overdue marking will happen")
        return _run(today, lookahead_days, configured)


def log_manual_reminder(*, sale_id: int, reminder_type: str, user_id: int | None, channel: str = "manual", today: date | None = None) -> ReminderRecord:
    """
    Record a reminder the shop sent by hand (for example from the WhatsApp
    link). The same sale/type/day dedup applies.
    """
    if reminder_type not in REMINDER_TYPES:
        raise ValidationError(f"reminder_type must be one of: {', '.join(REMINDER_TYPES)}")
    today = today or current_day()

    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise ReminderError("Sale not found", {"sale_id": sale_id}, status_code=404)
    if already_reminded(sale.id, reminder_type, today):
        raise ConflictError(f"A {reminder_type} reminder was already recorded today for sale {sale.id}")

    record = ReminderRecord(
        sale_id=sale.id,
        merchant_id=sale.merchant_id,
        reminder_type=reminder_type,
        email_sent_to=sale.merchant.email if channel == "email" else sale.merchant.contact,
        channels=channel,
        sent_at=utcnow(),
        sent_on=today,
        created_by_user_id=user_id,
    )
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"A {reminder_type} reminder was already recorded today for sale {sale_id}")
    return record


def list_reminder_history(*, sale_id: int | None = None, merchant_id: int | None = None, limit: int = HISTORY_LIMIT) -> list[ReminderRecord]:
    query = db.session.query(ReminderRecord)
    if sale_id is not None:
        query = query.filter(ReminderRecord.sale_id == sale_id)
    if merchant_id is not None:
        query = query.filter(ReminderRecord.merchant_id == merchant_id)
    return query.order_by(ReminderRecord.sent_at.desc(), ReminderRecord.id.desc()).limit(limit).all()


def whatsapp_link(sale_id: int, today: date | None = None) -> dict:
    """Click-to-chat link prefilled with the reminder text for a sale."""
    today = today or current_day()
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise ReminderError("Sale not found", {"sale_id": sale_id}, status_code=404)
    phone = normalize_phone(sale.merchant.contact, current_app.config["DEFAULT_COUNTRY_CODE"])
    if not phone:
        raise ReminderError("Merchant has no contact number", {"merchant_id": sale.merchant_id})

    classified = classify_reminder(sale.due_date, today, lookahead_days=10_000)
    reminder_type, days = classified if classified else (REMINDER_DUE_SOON, (sale.due_date - today).days)
    message = _message_for(sale, reminder_type, days)
    digits = phone.lstrip("+")
    return {
        "sale_id": sale.id,
        "phone": phone,
        "reminder_type": reminder_type,
        "message": message.text,
        "url": f"https://wa.me/{digits}?text={quote(message.text)}",
    }
