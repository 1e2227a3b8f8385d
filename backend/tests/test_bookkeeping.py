"""
Bookkeeping arithmetic tests.

Pure functions only; no database. Sales and payments are stand-in
objects with the attributes the helpers read.
"""

from datetime import date
from types import SimpleNamespace

import pytest

from stockmaker.services.bookkeeping import (
    compute_credit_score,
    compute_sale_amounts,
    derive_payment_status,
    is_risky,
    recompute_merchant_aggregates,
    recompute_sale_status,
    summarize_sales,
)


TODAY = date(2026, 10, 19)


def _sale(total, paid=0, due=date(2026, 11, 1), status="pending", sale_date=date(2026, 10, 1)):
    return SimpleNamespace(
        total_amount_cents=total,
        paid_amount_cents=paid,
        remaining_amount_cents=total - paid,
        due_date=due,
        payment_status=status,
        sale_date=sale_date,
    )


def _payment(amount):
    return SimpleNamespace(amount_cents=amount)


class TestPaymentStatus:

    @pytest.mark.parametrize(
        "paid,total,expected",
        [
            (0, 1000, "pending"),
            (1, 1000, "partial"),
            (999, 1000, "partial"),
            (1000, 1000, "paid"),
            (0, 0, "paid"),
        ],
    )
    def test_derive_payment_status(self, paid, total, expected):
        assert derive_payment_status(paid, total) == expected

    def test_compute_sale_amounts(self):
        amounts = compute_sale_amounts(quantity=3, rate_cents=1_500_000, paid_cents=500_000)
        assert amounts.total_cents == 4_500_000
        assert amounts.paid_cents == 500_000
        assert amounts.remaining_cents == 4_000_000
        assert amounts.status == "partial"
        assert amounts.paid_cents + amounts.remaining_cents == amounts.total_cents


class TestRecomputeSaleStatus:

    def test_sums_payments(self):
        sale = _sale(10_000)
        recompute_sale_status(sale, [_payment(2_500), _payment(2_500)], TODAY)
        assert sale.paid_amount_cents == 5_000
        assert sale.remaining_amount_cents == 5_000
        assert sale.payment_status == "partial"

    def test_fully_paid_is_paid_even_when_past_due(self):
        sale = _sale(10_000, due=date(2026, 10, 1))
        recompute_sale_status(sale, [_payment(10_000)], TODAY)
        assert sale.payment_status == "paid"
        assert sale.remaining_amount_cents == 0

    def test_unpaid_past_due_is_overdue(self):
        sale = _sale(10_000, due=date(2026, 10, 18))
        recompute_sale_status(sale, [_payment(1_000)], TODAY)
        assert sale.payment_status == "overdue"

    def test_due_today_is_not_overdue(self):
        sale = _sale(10_000, due=TODAY)
        recompute_sale_status(sale, [], TODAY)
        assert sale.payment_status == "pending"


class TestCreditScore:

    def test_no_purchases_scores_full(self):
        assert compute_credit_score(0, 0, 0) == 100

    def test_fully_paid_scores_full(self):
        assert compute_credit_score(100_000, 0, 0) == 100

    def test_outstanding_quarters_penalised(self):
        # Half outstanding -> two quarters -> -20
        assert compute_credit_score(100_000, 50_000, 0) == 80
        # Just under a quarter outstanding -> no quarter penalty
        assert compute_credit_score(100_000, 24_999, 0) == 100

    def test_overdue_sales_penalised(self):
        assert compute_credit_score(100_000, 10_000, 2) == 70

    def test_clamped_at_zero(self):
        assert compute_credit_score(100_000, 100_000, 10) == 0


class TestMerchantAggregates:

    def test_summarize_sales(self):
        sales = [
            _sale(10_000, paid=10_000, due=date(2026, 10, 1), status="paid", sale_date=date(2026, 9, 1)),
            _sale(20_000, paid=5_000, due=date(2026, 10, 10), status="partial", sale_date=date(2026, 9, 20)),
            _sale(30_000, paid=0, due=date(2026, 11, 10), status="pending", sale_date=date(2026, 10, 5)),
        ]
        totals = summarize_sales(sales, TODAY)
        assert totals.total_purchased_cents == 60_000
        assert totals.total_paid_cents == 15_000
        assert totals.remaining_balance_cents == 45_000
        assert totals.overdue_count == 1
        assert totals.overdue_amount_cents == 15_000
        assert totals.last_transaction_date == date(2026, 10, 5)
        # 4 * 45000 // 60000 = 3 quarters, one overdue sale
        assert totals.credit_score == 100 - 15 - 30

    def test_recompute_writes_onto_merchant(self):
        merchant = SimpleNamespace()
        recompute_merchant_aggregates(merchant, [_sale(8_000, paid=2_000)], TODAY)
        assert merchant.total_purchased_cents == 8_000
        assert merchant.total_paid_cents == 2_000
        assert merchant.remaining_balance_cents == 6_000
        assert merchant.total_purchased_cents == merchant.total_paid_cents + merchant.remaining_balance_cents
        assert merchant.credit_score == 100 - 10 * 3

    def test_no_sales_resets_to_zero(self):
        merchant = SimpleNamespace()
        totals = recompute_merchant_aggregates(merchant, [], TODAY)
        assert merchant.remaining_balance_cents == 0
        assert merchant.credit_score == 100
        assert merchant.last_transaction_date is None
        assert totals.overdue_count == 0

    def test_is_risky(self):
        sales = [_sale(10_000, due=date(2026, 10, d)) for d in (1, 2, 3)]
        totals = summarize_sales(sales, TODAY)
        assert is_risky(totals, overdue_count_limit=3, overdue_amount_limit_cents=10**9)
        assert not is_risky(totals, overdue_count_limit=4, overdue_amount_limit_cents=10**9)
        assert is_risky(totals, overdue_count_limit=10, overdue_amount_limit_cents=30_000)
