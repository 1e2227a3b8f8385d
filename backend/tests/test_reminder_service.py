"""
Reminder dispatch tests.

Channels are in-memory fakes so nothing leaves the process; the HTTP
channels themselves are covered in test_notification_channels.py.
"""

from datetime import date

import pytest

from stockmaker.extensions import db
from stockmaker.models import Notification, ReminderRecord, Sale
from stockmaker.services import reminder_service, sales_service
from stockmaker.services.notification_channels import NotificationChannel
from stockmaker.services.reminder_service import ReminderError
from stockmaker.validation import ConflictError, ValidationError


class FakeChannel(NotificationChannel):
    """Records every send; `ok` decides the delivery result."""

    def __init__(self, name: str, ok: bool = True, field: str = "contact"):
        super().__init__(client=None)
        self.name = name
        self.ok = ok
        self.field = field
        self.sent: list[tuple[str, str]] = []

    def is_configured(self) -> bool:
        return True

    def recipient_for(self, merchant):
        return getattr(merchant, self.field) or None

    def _deliver(self, recipient, subject, text, html):
        self.sent.append((recipient, subject))
        return self.ok


class ExplodingChannel(FakeChannel):
    def _deliver(self, recipient, subject, text, html):
        raise ValueError("provider returned garbage")


class CrashingChannel(FakeChannel):
    def _deliver(self, recipient, subject, text, html):
        raise AttributeError("'list' object has no attribute 'get'")


class PickyChannel(FakeChannel):
    """Blows up while resolving the recipient for one merchant."""

    def recipient_for(self, merchant):
        if merchant.name == "Gupta Telecom":
            raise RuntimeError("corrupt contact")
        return super().recipient_for(merchant)


def _sell(merchant, product, due_date, rate_cents=1000, paid_amount_cents=0):
    return sales_service.record_sale(
        merchant_id=merchant.id,
        product_id=product.id,
        quantity=1,
        rate_cents=rate_cents,
        paid_amount_cents=paid_amount_cents,
        due_date=due_date,
        user_id=None,
    )


def _records(sale_id=None):
    query = db.session.query(ReminderRecord)
    if sale_id is not None:
        query = query.filter_by(sale_id=sale_id)
    return query.all()


# =============================================================================
# CLASSIFICATION AND MESSAGES
# =============================================================================


class TestClassification:

    TODAY = date(2026, 10, 19)

    @pytest.mark.parametrize(
        "due,expected",
        [
            (date(2026, 10, 10), ("overdue", -9)),
            (date(2026, 10, 19), ("due_today", 0)),
            (date(2026, 10, 20), ("due_soon", 1)),
            (date(2026, 10, 22), ("due_soon", 3)),
            (date(2026, 10, 23), None),
        ],
    )
    def test_classify(self, due, expected):
        assert reminder_service.classify_reminder(due, self.TODAY, 3) == expected

    def test_format_money(self):
        assert reminder_service.format_money(123456789) == "₹1,234,567.89"
        assert reminder_service.format_money(5) == "₹0.05"

    def test_overdue_message(self, db_session, merchant, product, due_in):
        sale = _sell(merchant, product, due_in(-2), rate_cents=150000)
        msg = reminder_service.build_reminder_message(
            sale=sale, merchant=merchant, product=product,
            reminder_type="overdue", days=-2, shop_name="Stock Maker", shop_phone="0141-222",
        )
        assert msg.subject.startswith("Payment overdue: ₹1,500.00")
        assert "2 days overdue" in msg.text
        assert "Sharma Mobiles" in msg.text
        assert "Stock Maker (0141-222)" in msg.text
        assert "<strong>₹1,500.00</strong>" in msg.html


# =============================================================================
# BATCH
# =============================================================================


class TestReminderBatch:

    def test_sends_once_per_sale_type_and_day(self, db_session, merchant, product, today, due_in):
        sale = _sell(merchant, product, due_in(1))
        email = FakeChannel("email", field="email")

        first = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[email])
        second = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[email])

        assert first.sent == 1
        assert second.sent == 0
        assert second.skipped_duplicates == 1
        assert len(email.sent) == 1
        records = _records(sale.id)
        assert len(records) == 1
        assert records[0].reminder_type == "due_soon"
        assert records[0].channels == "email"
        assert records[0].email_sent_to == "sharma@example.com"
        assert records[0].sent_on == today

    def test_failed_channel_does_not_block_others(self, db_session, merchant, product, today, due_in):
        sale = _sell(merchant, product, today)
        broken = ExplodingChannel("email", field="email")
        flaky = FakeChannel("sms", ok=False)
        whatsapp = FakeChannel("whatsapp")

        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[broken, flaky, whatsapp])

        assert result.sent == 1
        assert result.channels["email"].attempted == 1
        assert result.channels["email"].succeeded == 0
        assert result.channels["sms"].succeeded == 0
        assert result.channels["whatsapp"].succeeded == 1
        record = _records(sale.id)[0]
        assert record.reminder_type == "due_today"
        assert record.channels == "whatsapp"

    def test_unexpected_channel_error_does_not_stop_batch(self, db_session, admin_user, merchant, product, today, due_in):
        late = _sell(merchant, product, due_in(-2))
        due = _sell(merchant, product, today)
        whatsapp = CrashingChannel("whatsapp")
        sms = FakeChannel("sms")

        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[whatsapp, sms])

        assert result.scanned == 2
        assert result.sent == 2
        assert result.errors == 0
        assert result.channels["whatsapp"].attempted == 2
        assert result.channels["whatsapp"].succeeded == 0
        assert _records(late.id)[0].channels == "sms"
        assert _records(due.id)[0].channels == "sms"
        assert db_session.query(Notification).filter_by(user_id=admin_user.id).count() == 1

    def test_error_on_one_sale_does_not_stop_the_rest(self, db_session, merchant, make_merchant, product, today):
        other = make_merchant()
        bad = _sell(other, product, today)
        good = _sell(merchant, product, today)

        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[PickyChannel("sms")])

        assert result.scanned == 2
        assert result.errors == 1
        assert result.sent == 1
        assert _records(bad.id) == []
        assert len(_records(good.id)) == 1

    def test_no_record_when_every_channel_fails(self, db_session, merchant, product, today, due_in):
        sale = _sell(merchant, product, due_in(2))

        result = reminder_service.run_reminder_batch(
            today=today, lookahead_days=3, channels=[FakeChannel("sms", ok=False)],
        )
        assert result.failed == 1
        assert _records(sale.id) == []

        # Providers recovered: the same day's run now delivers
        retry = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[FakeChannel("sms")])
        assert retry.sent == 1
        assert len(_records(sale.id)) == 1

    def test_merchant_without_recipient_is_skipped(self, db_session, make_merchant, product, today):
        no_email = make_merchant(email=None)
        _sell(no_email, product, today)

        result = reminder_service.run_reminder_batch(
            today=today, lookahead_days=3, channels=[FakeChannel("email", field="email")],
        )
        assert result.skipped_no_recipient == 1
        assert result.sent == 0
        assert _records() == []

    def test_marks_past_due_sales_overdue(self, db_session, merchant, product, today, due_in):
        sale = _sell(merchant, product, due_in(-1), rate_cents=1000, paid_amount_cents=400)
        assert db_session.get(Sale, sale.id).payment_status == "partial"

        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[FakeChannel("sms")])

        assert result.marked_overdue == 1
        assert result.sent == 1
        assert db_session.get(Sale, sale.id).payment_status == "overdue"
        assert _records(sale.id)[0].reminder_type == "overdue"

    def test_overdue_marking_survives_without_channels(self, db_session, merchant, product, today, due_in):
        sale = _sell(merchant, product, due_in(-5))

        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[])

        assert result.marked_overdue == 1
        assert result.skipped_no_recipient == 1
        assert db_session.get(Sale, sale.id).payment_status == "overdue"

    def test_ignores_paid_and_far_future_sales(self, db_session, merchant, product, today, due_in):
        _sell(merchant, product, due_in(-1), rate_cents=1000, paid_amount_cents=1000)
        _sell(merchant, product, due_in(10))
        sms = FakeChannel("sms")

        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[sms])

        assert result.scanned == 0
        assert sms.sent == []

    def test_different_types_on_same_day_are_allowed(self, db_session, merchant, product, today, due_in):
        sale = _sell(merchant, product, due_in(1))
        sms = FakeChannel("sms")
        reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[sms])

        sales_service.update_sale(sale_id=sale.id, user_id=None, due_date=today, fields={"due_date"})
        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[sms])

        assert result.sent == 1
        assert sorted(r.reminder_type for r in _records(sale.id)) == ["due_soon", "due_today"]

    def test_next_day_sends_again(self, db_session, merchant, product, today, due_in):
        sale = _sell(merchant, product, due_in(-3))
        sms = FakeChannel("sms")

        reminder_service.run_reminder_batch(today=due_in(0), lookahead_days=3, channels=[sms])
        reminder_service.run_reminder_batch(today=due_in(1), lookahead_days=3, channels=[sms])

        assert len(_records(sale.id)) == 2

    def test_notifies_admins(self, db_session, admin_user, merchant, product, today):
        _sell(merchant, product, today)

        reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[FakeChannel("sms")])

        note = db_session.query(Notification).filter_by(user_id=admin_user.id).one()
        assert "1 reminder(s) sent" in note.message

    def test_negative_lookahead_rejected(self, db_session):
        with pytest.raises(ReminderError):
            reminder_service.run_reminder_batch(lookahead_days=-1, channels=[])

    def test_result_serializes(self, db_session, merchant, product, today):
        _sell(merchant, product, today)
        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[FakeChannel("sms")])

        data = result.to_dict()
        assert data["run_date"] == today.isoformat()
        assert data["channels"] == {"sms": {"attempted": 1, "succeeded": 1}}
        assert data["details"][0]["outcome"] == "sent"


class TestMarkOverdue:

    def test_marks_only_unpaid_past_due(self, db_session, merchant, product, today, due_in):
        late = _sell(merchant, product, due_in(-1))
        settled = _sell(merchant, product, due_in(-1), paid_amount_cents=1000)
        upcoming = _sell(merchant, product, due_in(1))

        assert reminder_service.mark_overdue_sales(today) == 1
        assert db_session.get(Sale, late.id).payment_status == "overdue"
        assert db_session.get(Sale, settled.id).payment_status == "paid"
        assert db_session.get(Sale, upcoming.id).payment_status == "pending"
        assert reminder_service.mark_overdue_sales(today) == 0


# =============================================================================
# MANUAL REMINDERS AND LINKS
# =============================================================================


class TestManualReminders:

    def test_log_and_dedup(self, db_session, staff_user, merchant, product, today):
        sale = _sell(merchant, product, today)
        record = reminder_service.log_manual_reminder(
            sale_id=sale.id, reminder_type="due_today", user_id=staff_user.id, channel="whatsapp",
        )
        assert record.channels == "whatsapp"
        assert record.email_sent_to == merchant.contact
        assert record.created_by_user_id == staff_user.id

        with pytest.raises(ConflictError):
            reminder_service.log_manual_reminder(sale_id=sale.id, reminder_type="due_today", user_id=staff_user.id)

    def test_batch_respects_manual_log(self, db_session, merchant, product, today):
        sale = _sell(merchant, product, today)
        reminder_service.log_manual_reminder(sale_id=sale.id, reminder_type="due_today", user_id=None)
        sms = FakeChannel("sms")

        result = reminder_service.run_reminder_batch(today=today, lookahead_days=3, channels=[sms])

        assert result.skipped_duplicates == 1
        assert sms.sent == []

    def test_unknown_type(self, db_session, merchant, product, today):
        sale = _sell(merchant, product, today)
        with pytest.raises(ValidationError):
            reminder_service.log_manual_reminder(sale_id=sale.id, reminder_type="gentle", user_id=None)

    def test_history_filters(self, db_session, merchant, make_merchant, product, today):
        sale = _sell(merchant, product, today)
        other = _sell(make_merchant(), product, today)
        reminder_service.log_manual_reminder(sale_id=sale.id, reminder_type="due_today", user_id=None)
        reminder_service.log_manual_reminder(sale_id=other.id, reminder_type="due_today", user_id=None)

        assert len(reminder_service.list_reminder_history()) == 2
        assert [r.sale_id for r in reminder_service.list_reminder_history(merchant_id=merchant.id)] == [sale.id]

    def test_whatsapp_link(self, db_session, merchant, product, today, due_in):
        sale = _sell(merchant, product, due_in(-1))
        link = reminder_service.whatsapp_link(sale.id, today=today)

        assert link["phone"] == "+919876543210"
        assert link["reminder_type"] == "overdue"
        assert link["url"].startswith("https://wa.me/919876543210?text=")
        assert "Sharma Mobiles" in link["message"]

    def test_whatsapp_link_missing_sale(self, db_session):
        with pytest.raises(ReminderError) as exc:
            reminder_service.whatsapp_link(31337)
        assert exc.value.status_code == 404
