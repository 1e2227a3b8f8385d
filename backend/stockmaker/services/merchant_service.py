# Overview: Merchant (vyapari) ledger: CRUD, balance refresh, risk listing and cascade delete.

from __future__ import annotations

from collections import defaultdict
from datetime import date

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Merchant, Payment, ReminderRecord, Sale
from ..time_utils import today as current_day
from . import audit_service
from .bookkeeping import MerchantTotals, is_risky, recompute_merchant_aggregates, summarize_sales
from .concurrency import lock_for_update, run_with_retry
from .products_service import apply_stock_delta

MERCHANT_MUTABLE_FIELDS = {"name", "contact", "email", "address"}


class MerchantError(Exception):
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


def _get_merchant_or_404(merchant_id: int, *, for_update: bool = False) -> Merchant:
    query = db.session.query(Merchant).filter(Merchant.id == merchant_id)
    if for_update:
        query = lock_for_update(query)
    merchant = query.first()
    if not merchant:
        raise MerchantError("Merchant not found", {"merchant_id": merchant_id}, status_code=404)
    return merchant


def refresh_aggregates(merchant: Merchant, today: date | None = None) -> MerchantTotals:
    """
    Recompute the merchant's cached balances from its current sales.
    Pending session changes are flushed first by the query. Does not commit.
    """
    sales = db.session.query(Sale).filter(Sale.merchant_id == merchant.id).all()
    return recompute_merchant_aggregates(merchant, sales, today or current_day())


def create_merchant(*, patch: dict, user_id: int | None) -> dict:
    def _op():
        merchant = Merchant(created_by_user_id=user_id)
        for k, v in patch.items():
            if k in MERCHANT_MUTABLE_FIELDS:
                setattr(merchant, k, v)
        merchant.total_purchased_cents = 0
        merchant.total_paid_cents = 0
        merchant.remaining_balance_cents = 0
        merchant.credit_score = 100
        db.session.add(merchant)
        db.session.flush()

        audit_service.record_change(
            action="INSERT", table_name="merchants", record_id=merchant.id,
            user_id=user_id, new_data=merchant.to_dict(),
        )
        db.session.commit()
        return merchant.to_dict()

    return run_with_retry(_op)


def update_merchant(*, merchant_id: int, patch: dict, user_id: int | None) -> dict:
    """Contact details only; money aggregates are never client-writable."""
    def _op():
        merchant = _get_merchant_or_404(merchant_id, for_update=True)
        old = merchant.to_dict()
        for k, v in patch.items():
            if k in MERCHANT_MUTABLE_FIELDS:
                setattr(merchant, k, v)
        db.session.flush()

        audit_service.record_change(
            action="UPDATE", table_name="merchants", record_id=merchant.id,
            user_id=user_id, old_data=old, new_data=merchant.to_dict(),
        )
        db.session.commit()
        return merchant.to_dict()

    return run_with_retry(_op)


def get_merchant(merchant_id: int) -> Merchant:
    return _get_merchant_or_404(merchant_id)


def list_merchants(search: str | None = None) -> list[Merchant]:
    query = db.session.query(Merchant)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Merchant.name.ilike(like), Merchant.contact.ilike(like)))
    return query.order_by(Merchant.name.asc(), Merchant.id.asc()).all()


def find_by_name(name: str) -> Merchant | None:
    """Case-insensitive exact name match (used by bulk import)."""
    return (
        db.session.query(Merchant)
        .filter(db.func.lower(Merchant.name) == name.strip().lower())
        .order_by(Merchant.id.asc())
        .first()
    )


def get_transactions(merchant_id: int) -> dict:
    """The merchant's sales, newest first, each with its payments."""
    merchant = _get_merchant_or_404(merchant_id)
    sales = (
        db.session.query(Sale)
        .filter(Sale.merchant_id == merchant.id)
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .all()
    )
    payments = (
        db.session.query(Payment)
        .filter(Payment.merchant_id == merchant.id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .all()
    )
    by_sale: dict[int, list[dict]] = defaultdict(list)
    for p in payments:
        by_sale[p.sale_id].append(p.to_dict())

    items = []
    for sale in sales:
        data = sale.to_dict(include_refs=True)
        data["payments"] = by_sale.get(sale.id, [])
        items.append(data)

    return {"merchant": merchant.to_dict(), "sales": items, "payments": [p.to_dict() for p in payments]}


def recalculate_merchant(merchant_id: int, user_id: int | None = None) -> dict:
    """Force a balance refresh (repairs rows edited outside the app)."""
    def _op():
        merchant = _get_merchant_or_404(merchant_id, for_update=True)
        old = merchant.to_dict()
        refresh_aggregates(merchant)
        db.session.flush()
        if old != merchant.to_dict():
            audit_service.record_change(
                action="UPDATE", table_name="merchants", record_id=merchant.id,
                user_id=user_id, old_data=old, new_data=merchant.to_dict(),
            )
        db.session.commit()
        return merchant.to_dict()

    return run_with_retry(_op)


def list_risky_merchants(today: date | None = None) -> list[dict]:
    """
    Merchants with too many overdue sales or too much overdue money,
    worst first.
    """
    today = today or current_day()
    count_limit = current_app.config["RISKY_OVERDUE_COUNT"]
    amount_limit = current_app.config["RISKY_OVERDUE_AMOUNT_CENTS"]

    sales_by_merchant: dict[int, list[Sale]] = defaultdict(list)
    for sale in db.session.query(Sale).filter(Sale.remaining_amount_cents > 0).all():
        sales_by_merchant[sale.merchant_id].append(sale)
    if not sales_by_merchant:
        return []

    merchants = db.session.query(Merchant).filter(Merchant.id.in_(list(sales_by_merchant))).all()
    risky = []
    for merchant in merchants:
        totals = summarize_sales(sales_by_merchant[merchant.id], today)
        if is_risky(totals, overdue_count_limit=count_limit, overdue_amount_limit_cents=amount_limit):
            risky.append({
                "merchant": merchant.to_dict(),
                "overdue_count": totals.overdue_count,
                "overdue_amount_cents": totals.overdue_amount_cents,
            })
    risky.sort(key=lambda r: (r["overdue_amount_cents"], r["overdue_count"]), reverse=True)
    return risky


def delete_merchant_with_sales(merchant_id: int, user_id: int | None) -> dict:
    """
    Delete a merchant together with its sales, payments and reminder
    records, returning every sold unit to stock. One transaction: any
    failure rolls the whole cascade back.
    """
    def _op():
        merchant = _get_merchant_or_404(merchant_id, for_update=True)
        sales = lock_for_update(
            db.session.query(Sale).filter(Sale.merchant_id == merchant.id)
        ).all()

        restock: dict[int, int] = defaultdict(int)
        for sale in sales:
            restock[sale.product_id] += sale.quantity
        on_date = current_day()
        for product_id in sorted(restock):
            apply_stock_delta(product_id, restock[product_id], on_date=on_date)

        sale_ids = [s.id for s in sales]
        payment_filter = Payment.merchant_id == merchant.id
        reminder_filter = ReminderRecord.merchant_id == merchant.id
        if sale_ids:
            payment_filter = or_(payment_filter, Payment.sale_id.in_(sale_ids))
            reminder_filter = or_(reminder_filter, ReminderRecord.sale_id.in_(sale_ids))

        payments_deleted = db.session.query(Payment).filter(payment_filter).delete(synchronize_session=False)
        reminders_deleted = db.session.query(ReminderRecord).filter(reminder_filter).delete(synchronize_session=False)
        for sale in sales:
            db.session.delete(sale)

        old = merchant.to_dict()
        db.session.delete(merchant)
        db.session.flush()

        summary = {
            "merchant_id": merchant_id,
            "sales_deleted": len(sales),
            "payments_deleted": payments_deleted,
            "reminders_deleted": reminders_deleted,
            "products_restocked": len(restock),
            "units_restocked": sum(restock.values()),
        }
        audit_service.record_change(
            action="DELETE", table_name="merchants", record_id=merchant_id,
            user_id=user_id, old_data=old, new_data={"cascade": summary},
        )
        db.session.commit()
        return summary

    return run_with_retry(_op)
