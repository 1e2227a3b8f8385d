# Overview: Pure money arithmetic for sales and merchant balances.

"""
Recalculation rules for the udhari ledger.

Nothing here touches the database. The services call these inside the
same transaction as the write that made them necessary, so cached
figures on Sale and Merchant rows never drift from the underlying
payments.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from ..models.sales import STATUS_OVERDUE, STATUS_PAID, STATUS_PARTIAL, STATUS_PENDING

CREDIT_SCORE_MAX = 100
OVERDUE_PENALTY = 15
OUTSTANDING_PENALTY = 10


@dataclass(frozen=True)
class SaleAmounts:
    total_cents: int
    paid_cents: int
    remaining_cents: int
    status: str


@dataclass(frozen=True)
class MerchantTotals:
    total_purchased_cents: int
    total_paid_cents: int
    remaining_balance_cents: int
    overdue_count: int
    overdue_amount_cents: int
    credit_score: int
    last_transaction_date: date | None


def derive_payment_status(paid_cents: int, total_cents: int) -> str:
    """paid >= total -> paid; paid > 0 -> partial; otherwise pending."""
    if paid_cents >= total_cents:
        return STATUS_PAID
    if paid_cents > 0:
        return STATUS_PARTIAL
    return STATUS_PENDING


def compute_sale_amounts(quantity: int, rate_cents: int, paid_cents: int) -> SaleAmounts:
    total = quantity * rate_cents
    return SaleAmounts(
        total_cents=total,
        paid_cents=paid_cents,
        remaining_cents=total - paid_cents,
        status=derive_payment_status(paid_cents, total),
    )


def is_past_due(due_date: date | None, today: date) -> bool:
    return due_date is not None and due_date < today


def recompute_sale_status(sale, payments: Iterable, today: date) -> SaleAmounts:
    """
    Re-derive paid/remaining/status of `sale` from its payment rows and
    write them onto the sale. An unpaid sale whose due date has passed is
    overdue.
    """
    paid = sum(p.amount_cents for p in payments)
    total = sale.total_amount_cents
    status = derive_payment_status(paid, total)
    if status != STATUS_PAID and is_past_due(sale.due_date, today):
        status = STATUS_OVERDUE

    sale.paid_amount_cents = paid
    sale.remaining_amount_cents = total - paid
    sale.payment_status = status
    return SaleAmounts(total_cents=total, paid_cents=paid, remaining_cents=total - paid, status=status)


def compute_credit_score(total_purchased_cents: int, remaining_balance_cents: int, overdue_count: int) -> int:
    """
    100 minus 15 per overdue sale and 10 per quarter of purchases still
    outstanding, clamped to 0..100.
    """
    if total_purchased_cents <= 0:
        return CREDIT_SCORE_MAX
    outstanding_quarters = (4 * max(remaining_balance_cents, 0)) // total_purchased_cents
    score = CREDIT_SCORE_MAX - OVERDUE_PENALTY * overdue_count - OUTSTANDING_PENALTY * outstanding_quarters
    return max(0, min(CREDIT_SCORE_MAX, score))


def summarize_sales(sales: Iterable, today: date) -> MerchantTotals:
    purchased = 0
    paid = 0
    overdue_count = 0
    overdue_amount = 0
    last_date = None

    for sale in sales:
        purchased += sale.total_amount_cents
        paid += sale.paid_amount_cents
        remaining = sale.total_amount_cents - sale.paid_amount_cents
        if remaining > 0 and (sale.payment_status == STATUS_OVERDUE or is_past_due(sale.due_date, today)):
            overdue_count += 1
            overdue_amount += remaining
        if sale.sale_date and (last_date is None or sale.sale_date > last_date):
            last_date = sale.sale_date

    remaining_balance = purchased - paid
    return MerchantTotals(
        total_purchased_cents=purchased,
        total_paid_cents=paid,
        remaining_balance_cents=remaining_balance,
        overdue_count=overdue_count,
        overdue_amount_cents=overdue_amount,
        credit_score=compute_credit_score(purchased, remaining_balance, overdue_count),
        last_transaction_date=last_date,
    )


def recompute_merchant_aggregates(merchant, sales: Iterable, today: date) -> MerchantTotals:
    """Write purchased/paid/remaining and credit score onto `merchant`."""
    totals = summarize_sales(sales, today)
    merchant.total_purchased_cents = totals.total_purchased_cents
    merchant.total_paid_cents = totals.total_paid_cents
    merchant.remaining_balance_cents = totals.remaining_balance_cents
    merchant.credit_score = totals.credit_score
    merchant.last_transaction_date = totals.last_transaction_date
    return totals


def is_risky(totals: MerchantTotals, *, overdue_count_limit: int, overdue_amount_limit_cents: int) -> bool:
    return (
        totals.overdue_count >= overdue_count_limit
        or totals.overdue_amount_cents >= overdue_amount_limit_cents
    )
