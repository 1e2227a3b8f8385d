# Overview: Credit sale recording, editing, listing and deletion with stock restoration.

"""
Sales Service

A sale moves stock out and puts money on a merchant's udhari balance.
Each write below is one transaction: stock delta, sale row, first
payment, merchant aggregates and audit entry commit together or not at
all.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Merchant, Payment, Product, ReminderRecord, Sale
from ..models.sales import STATUS_OVERDUE, STATUS_PARTIAL, STATUS_PENDING
from ..time_utils import today as current_day
from ..validation import (
    NotFoundError,
    PAYMENT_METHODS,
    ValidationError,
    coerce_date,
    coerce_int,
    enforce_rules_sale,
)
from . import audit_service
from .bookkeeping import compute_sale_amounts, recompute_sale_status
from .concurrency import lock_for_update, run_with_retry
from .merchant_service import refresh_aggregates
from .products_service import InsufficientStockError, apply_stock_delta


class SaleError(Exception):
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


def parse_sale_input(data: dict) -> dict:
    """
    Validate a sale request before anything is written. Raises
    ValidationError naming the first offending field.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    missing = [f for f in ("merchant_id", "product_id", "quantity", "rate_cents", "due_date") if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    parsed = {
        "merchant_id": coerce_int("merchant_id", data["merchant_id"]),
        "product_id": coerce_int("product_id", data["product_id"]),
        "quantity": coerce_int("quantity", data["quantity"]),
        "rate_cents": coerce_int("rate_cents", data["rate_cents"]),
        "paid_amount_cents": coerce_int("paid_amount_cents", data.get("paid_amount_cents") or 0),
        "due_date": coerce_date("due_date", data["due_date"]),
        "sale_date": coerce_date("sale_date", data["sale_date"]) if data.get("sale_date") else None,
        "notes": (str(data["notes"]).strip() or None) if data.get("notes") else None,
        "payment_method": str(data.get("payment_method") or "cash").strip().lower(),
    }
    enforce_rules_sale(
        quantity=parsed["quantity"],
        rate_cents=parsed["rate_cents"],
        paid_amount_cents=parsed["paid_amount_cents"],
    )
    if parsed["payment_method"] not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    return parsed


def record_sale(
    *,
    merchant_id: int,
    product_id: int,
    quantity: int,
    rate_cents: int,
    due_date: date,
    user_id: int | None,
    paid_amount_cents: int = 0,
    sale_date: date | None = None,
    notes: str | None = None,
    payment_method: str = "cash",
) -> Sale:
    """
    Record a credit sale.

    Stock is taken with a conditional delta so two concurrent sales can
    never oversell. An amount paid up front becomes the sale's first
    Payment row, keeping paid_amount equal to the sum of payments.
    """
    enforce_rules_sale(quantity=quantity, rate_cents=rate_cents, paid_amount_cents=paid_amount_cents)

    def _op():
        merchant = lock_for_update(db.session.query(Merchant).filter(Merchant.id == merchant_id)).first()
        if not merchant:
            raise SaleError("Merchant not found", {"merchant_id": merchant_id}, status_code=404)
        product = db.session.get(Product, product_id)
        if not product:
            raise SaleError("Product not found", {"product_id": product_id}, status_code=404)

        today = current_day()
        on_date = sale_date or today

        try:
            apply_stock_delta(product.id, -quantity, on_date=on_date)
        except InsufficientStockError:
            db.session.refresh(product)
            raise SaleError(
                "Insufficient stock",
                {"product_id": product.id, "available": product.quantity, "requested": quantity},
            )

        amounts = compute_sale_amounts(quantity, rate_cents, paid_amount_cents)
        sale = Sale(
            merchant_id=merchant.id,
            product_id=product.id,
            quantity=quantity,
            rate_cents=rate_cents,
            total_amount_cents=amounts.total_cents,
            paid_amount_cents=amounts.paid_cents,
            remaining_amount_cents=amounts.remaining_cents,
            payment_status=amounts.status,
            sale_date=on_date,
            due_date=due_date,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(sale)
        db.session.flush()

        if paid_amount_cents > 0:
            db.session.add(Payment(
                sale_id=sale.id,
                merchant_id=merchant.id,
                amount_cents=paid_amount_cents,
                payment_date=on_date,
                payment_method=payment_method,
                notes="Paid at sale",
                created_by_user_id=user_id,
            ))

        refresh_aggregates(merchant, today)

        audit_service.record_change(
            action="INSERT", table_name="sales", record_id=sale.id,
            user_id=user_id, new_data=sale.to_dict(),
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)


def update_sale(*, sale_id: int, user_id: int | None, due_date=None, notes=None, fields: set[str] | None = None) -> Sale:
    """
    Change a sale's due date and/or notes. Quantities and amounts are
    immutable: delete and re-record instead. Status is re-derived for the
    new due date.
    """
    fields = fields or set()
    allowed = {"due_date", "notes"}
    unknown = fields - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
        if not sale:
            raise SaleError("Sale not found", {"sale_id": sale_id}, status_code=404)

        old = sale.to_dict()
        if "due_date" in fields:
            sale.due_date = coerce_date("due_date", due_date)
        if "notes" in fields:
            sale.notes = (str(notes).strip() or None) if notes else None

        today = current_day()
        payments = db.session.query(Payment).filter(Payment.sale_id == sale.id).all()
        recompute_sale_status(sale, payments, today)
        refresh_aggregates(sale.merchant, today)

        audit_service.record_change(
            action="UPDATE", table_name="sales", record_id=sale.id,
            user_id=user_id, old_data=old, new_data=sale.to_dict(),
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)


def delete_sale(sale_id: int, user_id: int | None) -> dict:
    """
    Delete a sale, returning its quantity to stock.

    The sale row is deleted (with its version check) before stock moves,
    so a repeated or concurrent delete fails with "Sale not found" instead
    of crediting the stock twice.
    """
    def _op():
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
        if not sale:
            raise SaleError("Sale not found", {"sale_id": sale_id}, status_code=404)

        old = sale.to_dict()
        merchant = sale.merchant
        product_id = sale.product_id
        quantity = sale.quantity

        payments_deleted = (
            db.session.query(Payment).filter(Payment.sale_id == sale.id).delete(synchronize_session=False)
        )
        reminders_deleted = (
            db.session.query(ReminderRecord).filter(ReminderRecord.sale_id == sale.id).delete(synchronize_session=False)
        )
        db.session.delete(sale)
        db.session.flush()

        try:
            apply_stock_delta(product_id, quantity, on_date=current_day())
        except NotFoundError:
            raise SaleError("Product for this sale no longer exists", {"product_id": product_id}, status_code=409)

        if merchant is not None:
            refresh_aggregates(merchant)

        audit_service.record_change(
            action="DELETE", table_name="sales", record_id=sale_id,
            user_id=user_id, old_data=old,
        )
        db.session.commit()
        return {
            "sale_id": sale_id,
            "product_id": product_id,
            "quantity_restored": quantity,
            "payments_deleted": payments_deleted,
            "reminders_deleted": reminders_deleted,
        }

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise SaleError("Sale not found", {"sale_id": sale_id}, status_code=404)
    return sale


def list_sales(
    *,
    merchant_id: int | None = None,
    status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    limit: int | None = None,
) -> list[Sale]:
    query = db.session.query(Sale)
    if merchant_id is not None:
        query = query.filter(Sale.merchant_id == merchant_id)
    if status:
        query = query.filter(Sale.payment_status == status)
    if start_date:
        query = query.filter(Sale.sale_date >= start_date)
    if end_date:
        query = query.filter(Sale.sale_date <= end_date)
    query = query.order_by(Sale.sale_date.desc(), Sale.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def list_outstanding_sales() -> list[Sale]:
    """Pending and partial sales, earliest due first."""
    return (
        db.session.query(Sale)
        .filter(Sale.payment_status.in_([STATUS_PENDING, STATUS_PARTIAL, STATUS_OVERDUE]))
        .filter(Sale.remaining_amount_cents > 0)
        .order_by(Sale.due_date.asc(), Sale.id.asc())
        .all()
    )


def list_overdue_sales(today: date | None = None) -> list[Sale]:
    """Unpaid sales whose due date is before today."""
    today = today or current_day()
    return (
        db.session.query(Sale)
        .filter(Sale.remaining_amount_cents > 0)
        .filter(Sale.due_date < today)
        .order_by(Sale.due_date.asc(), Sale.id.asc())
        .all()
    )
