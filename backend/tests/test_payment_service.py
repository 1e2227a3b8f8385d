"""
Payment collection tests.

A payment is appended to a sale and the sale's paid/remaining/status plus
the merchant's balances are re-derived from the payment rows in the same
commit.
"""

import pytest

from stockmaker.models import Payment, Sale
from stockmaker.services import payment_service, sales_service
from stockmaker.services.payment_service import PaymentError
from stockmaker.validation import ValidationError


@pytest.fixture
def open_sale(db_session, merchant, product, due_in):
    """quantity 10 @ 100 with 500 paid up front."""
    return sales_service.record_sale(
        merchant_id=merchant.id,
        product_id=product.id,
        quantity=10,
        rate_cents=100,
        paid_amount_cents=500,
        due_date=due_in(5),
        user_id=None,
    )


class TestRecordPayment:

    def test_full_payment_settles_sale(self, db_session, open_sale):
        payment, sale = payment_service.record_payment(sale_id=open_sale.id, amount_cents=500, user_id=None)

        assert payment.amount_cents == 500
        assert sale.paid_amount_cents == 1000
        assert sale.remaining_amount_cents == 0
        assert sale.payment_status == "paid"

    def test_paid_equals_sum_of_payments(self, db_session, open_sale):
        payment_service.record_payment(sale_id=open_sale.id, amount_cents=100, user_id=None)
        payment_service.record_payment(sale_id=open_sale.id, amount_cents=150, user_id=None, payment_method="upi")

        sale = db_session.get(Sale, open_sale.id)
        total = sum(p.amount_cents for p in db_session.query(Payment).filter_by(sale_id=sale.id))
        assert total == sale.paid_amount_cents == 750
        assert sale.remaining_amount_cents == 250
        assert sale.payment_status == "partial"

    def test_updates_merchant_balance(self, db_session, merchant, open_sale):
        payment_service.record_payment(sale_id=open_sale.id, amount_cents=300, user_id=None)

        db_session.refresh(merchant)
        assert merchant.total_purchased_cents == 1000
        assert merchant.total_paid_cents == 800
        assert merchant.remaining_balance_cents == 200
        assert merchant.remaining_balance_cents == merchant.total_purchased_cents - merchant.total_paid_cents

    def test_overpayment_rejected(self, db_session, open_sale):
        with pytest.raises(ValidationError, match="remaining balance"):
            payment_service.record_payment(sale_id=open_sale.id, amount_cents=501, user_id=None)

        sale = db_session.get(Sale, open_sale.id)
        assert sale.paid_amount_cents == 500
        assert db_session.query(Payment).filter_by(sale_id=sale.id).count() == 1

    def test_negative_amount_rejected(self, db_session, open_sale):
        with pytest.raises(ValidationError):
            payment_service.record_payment(sale_id=open_sale.id, amount_cents=-1, user_id=None)

    def test_unknown_method_rejected(self, db_session, open_sale):
        with pytest.raises(ValidationError):
            payment_service.record_payment(sale_id=open_sale.id, amount_cents=10, user_id=None, payment_method="gold")

    def test_unknown_sale(self, db_session):
        with pytest.raises(PaymentError) as exc:
            payment_service.record_payment(sale_id=4040, amount_cents=10, user_id=None)
        assert exc.value.status_code == 404

    def test_wrong_merchant(self, db_session, open_sale, make_merchant):
        other = make_merchant()
        with pytest.raises(PaymentError):
            payment_service.record_payment(sale_id=open_sale.id, amount_cents=10, user_id=None, merchant_id=other.id)

    def test_late_partial_payment_stays_overdue(self, db_session, merchant, product, due_in):
        late = sales_service.record_sale(
            merchant_id=merchant.id, product_id=product.id, quantity=1,
            rate_cents=1000, due_date=due_in(-1), user_id=None,
        )
        _, sale = payment_service.record_payment(sale_id=late.id, amount_cents=400, user_id=None)
        assert sale.payment_status == "overdue"

        _, sale = payment_service.record_payment(sale_id=late.id, amount_cents=600, user_id=None)
        assert sale.payment_status == "paid"


class TestParsePaymentInput:

    def test_defaults(self):
        parsed = payment_service.parse_payment_input({"sale_id": 3, "amount_cents": "250"})
        assert parsed == {
            "sale_id": 3,
            "merchant_id": None,
            "amount_cents": 250,
            "payment_date": None,
            "payment_method": "cash",
            "notes": None,
        }

    def test_missing_amount(self):
        with pytest.raises(ValidationError):
            payment_service.parse_payment_input({"sale_id": 3})

    def test_non_string_method_is_a_validation_error(self, db_session, open_sale):
        parsed = payment_service.parse_payment_input({"sale_id": open_sale.id, "amount_cents": 100, "payment_method": 7})
        assert parsed["payment_method"] == "7"

        with pytest.raises(ValidationError, match="payment_method"):
            payment_service.record_payment(user_id=None, **parsed)

    def test_non_string_method_over_http(self, client, staff_headers, open_sale):
        resp = client.post(
            "/api/payments",
            json={"sale_id": open_sale.id, "amount_cents": 100, "payment_method": 7},
            headers=staff_headers,
        )
        assert resp.status_code == 400


class TestListPayments:

    def test_filters(self, db_session, merchant, open_sale):
        payment_service.record_payment(sale_id=open_sale.id, amount_cents=100, user_id=None)

        assert len(payment_service.list_payments(sale_id=open_sale.id)) == 2
        assert len(payment_service.list_payments(merchant_id=merchant.id)) == 2
        assert payment_service.list_payments(merchant_id=merchant.id + 1) == []
