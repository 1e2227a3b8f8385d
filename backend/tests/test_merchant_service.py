"""
Merchant ledger tests: aggregates, risk listing and the cascading delete.
"""

import pytest

from stockmaker.models import AuditLog, Merchant, Payment, Product, ReminderRecord, Sale
from stockmaker.services import audit_service, merchant_service, payment_service, sales_service
from stockmaker.services.merchant_service import MerchantError
from stockmaker.time_utils import utcnow


def _sell(merchant, product, due_date, quantity=1, rate_cents=1000, paid_amount_cents=0):
    return sales_service.record_sale(
        merchant_id=merchant.id,
        product_id=product.id,
        quantity=quantity,
        rate_cents=rate_cents,
        paid_amount_cents=paid_amount_cents,
        due_date=due_date,
        user_id=None,
    )


# =============================================================================
# CRUD
# =============================================================================


class TestMerchantCrud:

    def test_create_starts_clean(self, db_session):
        data = merchant_service.create_merchant(
            patch={"name": "Verma Traders", "contact": "9000000001", "total_paid_cents": 999},
            user_id=None,
        )
        assert data["name"] == "Verma Traders"
        assert data["total_paid_cents"] == 0
        assert data["remaining_balance_cents"] == 0
        assert data["credit_score"] == 100

    def test_update_ignores_money_fields(self, db_session, merchant):
        data = merchant_service.update_merchant(
            merchant_id=merchant.id,
            patch={"address": "New Market", "remaining_balance_cents": 5},
            user_id=None,
        )
        assert data["address"] == "New Market"
        assert data["remaining_balance_cents"] == 0

    def test_get_missing(self, db_session):
        with pytest.raises(MerchantError) as exc:
            merchant_service.get_merchant(777)
        assert exc.value.status_code == 404

    def test_search_and_find_by_name(self, db_session, merchant, make_merchant):
        make_merchant(name="Gupta Telecom", contact="9123456780")
        assert [m.name for m in merchant_service.list_merchants(search="sharma")] == ["Sharma Mobiles"]
        assert [m.name for m in merchant_service.list_merchants(search="91234")] == ["Gupta Telecom"]
        assert merchant_service.find_by_name("  sharma MOBILES ").id == merchant.id
        assert merchant_service.find_by_name("nobody") is None


# =============================================================================
# LEDGER
# =============================================================================


class TestLedger:

    def test_transactions_group_payments_under_sales(self, db_session, merchant, product, due_in):
        sale = _sell(merchant, product, due_in(5), quantity=2, rate_cents=1000, paid_amount_cents=500)
        payment_service.record_payment(sale_id=sale.id, amount_cents=700, user_id=None)

        ledger = merchant_service.get_transactions(merchant.id)
        assert ledger["merchant"]["id"] == merchant.id
        assert len(ledger["sales"]) == 1
        assert len(ledger["sales"][0]["payments"]) == 2
        assert ledger["sales"][0]["product"]["name"] == product.name
        assert len(ledger["payments"]) == 2

    def test_recalculate_repairs_drift(self, db_session, merchant, product, due_in):
        _sell(merchant, product, due_in(5), quantity=1, rate_cents=2000)
        m = db_session.get(Merchant, merchant.id)
        m.remaining_balance_cents = 1
        db_session.commit()

        data = merchant_service.recalculate_merchant(merchant.id)
        assert data["remaining_balance_cents"] == 2000
        assert db_session.query(AuditLog).filter_by(table_name="merchants", action="UPDATE").count() == 1

    def test_balance_matches_sum_of_sale_remainders(self, db_session, merchant, product, due_in):
        _sell(merchant, product, due_in(5), quantity=1, rate_cents=1000, paid_amount_cents=250)
        _sell(merchant, product, due_in(-5), quantity=2, rate_cents=1500)

        db_session.refresh(merchant)
        remaining = sum(s.remaining_amount_cents for s in db_session.query(Sale).filter_by(merchant_id=merchant.id))
        assert merchant.remaining_balance_cents == remaining == 3750


class TestRiskyMerchants:

    def test_overdue_count_threshold(self, app, db_session, merchant, make_merchant, product, due_in):
        careful = make_merchant()
        for days in (-1, -2, -3):
            _sell(merchant, product, due_in(days), rate_cents=100)
        _sell(careful, product, due_in(-1), rate_cents=100)

        risky = merchant_service.list_risky_merchants()
        assert [r["merchant"]["id"] for r in risky] == [merchant.id]
        assert risky[0]["overdue_count"] == 3
        assert risky[0]["overdue_amount_cents"] == 300

    def test_overdue_amount_threshold(self, app, db_session, merchant, product, due_in, monkeypatch):
        monkeypatch.setitem(app.config, "RISKY_OVERDUE_AMOUNT_CENTS", 5000)
        _sell(merchant, product, due_in(-1), rate_cents=5000)

        risky = merchant_service.list_risky_merchants()
        assert len(risky) == 1
        assert risky[0]["overdue_count"] == 1

    def test_paid_sales_are_not_risky(self, db_session, merchant, product, due_in):
        for days in (-1, -2, -3):
            _sell(merchant, product, due_in(days), rate_cents=100, paid_amount_cents=100)
        assert merchant_service.list_risky_merchants() == []


# =============================================================================
# CASCADE DELETE
# =============================================================================


class TestDeleteMerchantWithSales:

    def test_restocks_every_product_and_removes_everything(self, db_session, merchant, make_merchant, make_product, due_in):
        p1 = make_product(name="Phone A", quantity=10)
        p2 = make_product(name="Phone B", quantity=4)
        bystander = make_merchant()

        s1 = _sell(merchant, p1, due_in(3), quantity=2, paid_amount_cents=500)
        _sell(merchant, p1, due_in(3), quantity=3)
        _sell(merchant, p2, due_in(3), quantity=4)
        kept = _sell(bystander, p1, due_in(3), quantity=1)
        db_session.add(ReminderRecord(
            sale_id=s1.id, merchant_id=merchant.id, reminder_type="due_soon",
            channels="sms", sent_at=utcnow(), sent_on=due_in(0),
        ))
        db_session.commit()
        assert db_session.get(Product, p1.id).quantity == 4
        assert db_session.get(Product, p2.id).quantity == 0

        summary = merchant_service.delete_merchant_with_sales(merchant.id, user_id=None)

        assert summary == {
            "merchant_id": merchant.id,
            "sales_deleted": 3,
            "payments_deleted": 1,
            "reminders_deleted": 1,
            "products_restocked": 2,
            "units_restocked": 9,
        }
        # Only the bystander's unit is still out
        assert db_session.get(Product, p1.id).quantity == 9
        p2 = db_session.get(Product, p2.id)
        assert p2.quantity == 4
        assert p2.sold is False

        assert db_session.get(Merchant, merchant.id) is None
        assert db_session.query(Sale).filter_by(merchant_id=merchant.id).count() == 0
        assert db_session.query(Payment).filter_by(merchant_id=merchant.id).count() == 0
        assert db_session.query(ReminderRecord).filter_by(merchant_id=merchant.id).count() == 0
        assert db_session.get(Sale, kept.id) is not None

        log = db_session.query(AuditLog).filter_by(table_name="merchants", action="DELETE").one()
        assert log.new_data["cascade"]["units_restocked"] == 9

    def test_merchant_without_sales(self, db_session, merchant):
        summary = merchant_service.delete_merchant_with_sales(merchant.id, user_id=None)
        assert summary["sales_deleted"] == 0
        assert summary["units_restocked"] == 0
        assert db_session.get(Merchant, merchant.id) is None

    def test_failure_rolls_back_whole_cascade(self, db_session, merchant, make_product, due_in, monkeypatch):
        phone = make_product(quantity=5)
        _sell(merchant, phone, due_in(3), quantity=2, paid_amount_cents=100)

        def boom(**kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(audit_service, "record_change", boom)

        with pytest.raises(RuntimeError):
            merchant_service.delete_merchant_with_sales(merchant.id, user_id=None)

        assert db_session.get(Product, phone.id).quantity == 3
        assert db_session.get(Merchant, merchant.id) is not None
        assert db_session.query(Sale).filter_by(merchant_id=merchant.id).count() == 1
        assert db_session.query(Payment).filter_by(merchant_id=merchant.id).count() == 1

    def test_second_delete_is_not_found(self, db_session, merchant, make_product, due_in):
        phone = make_product(quantity=5)
        _sell(merchant, phone, due_in(3), quantity=2)
        merchant_service.delete_merchant_with_sales(merchant.id, user_id=None)

        with pytest.raises(MerchantError) as exc:
            merchant_service.delete_merchant_with_sales(merchant.id, user_id=None)

        assert exc.value.status_code == 404
        assert db_session.get(Product, phone.id).quantity == 5
