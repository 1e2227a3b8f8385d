# Overview: Payment collection against credit sales; keeps sale and merchant balances in step.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Payment, Sale
from ..time_utils import today as current_day
from ..validation import ValidationError, coerce_date, coerce_int, enforce_rules_payment
from . import audit_service
from .bookkeeping import recompute_sale_status
from .concurrency import lock_for_update, run_with_retry
from .merchant_service import refresh_aggregates


class PaymentError(Exception):
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


def parse_payment_input(data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [f for f in ("sale_id", "amount_cents") if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    return {
        "sale_id": coerce_int("sale_id", data["sale_id"]),
        "merchant_id": coerce_int("merchant_id", data["merchant_id"]) if data.get("merchant_id") not in (None, "") else None,
        "amount_cents": coerce_int("amount_cents", data["amount_cents"]),
        "payment_date": coerce_date("payment_date", data["payment_date"]) if data.get("payment_date") else None,
        "payment_method": str(data.get("payment_method") or "cash").strip().lower(),
        "notes": (str(data["notes"]).strip() or None) if data.get("notes") else None,
    }


def record_payment(
    *,
    sale_id: int,
    amount_cents: int,
    user_id: int | None,
    merchant_id: int | None = None,
    payment_date: date | None = None,
    payment_method: str = "cash",
    notes: str | None = None,
) -> tuple[Payment, Sale]:
    """
    Append a payment and re-derive the sale and merchant balances from
    the payment rows, all in one commit.

    The amount may not exceed the sale's remaining balance; this check
    runs against the locked row, so two concurrent payments cannot both
    settle the same rupee.
    """
    def _op():
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
        if not sale:
            raise PaymentError("Sale not found", {"sale_id": sale_id}, status_code=404)
        if merchant_id is not None and merchant_id != sale.merchant_id:
            raise PaymentError(
                "Sale does not belong to this merchant",
                {"sale_id": sale.id, "merchant_id": merchant_id},
            )

        enforce_rules_payment(
            amount_cents=amount_cents,
            remaining_cents=sale.remaining_amount_cents,
            payment_method=payment_method,
        )

        today = current_day()
        payment = Payment(
            sale_id=sale.id,
            merchant_id=sale.merchant_id,
            amount_cents=amount_cents,
            payment_date=payment_date or today,
            payment_method=payment_method,
            notes=notes,
            created_by_user_id=user_id,
        )
        db.session.add(payment)
        db.session.flush()

        payments = db.session.query(Payment).filter(Payment.sale_id == sale.id).all()
        recompute_sale_status(sale, payments, today)
        refresh_aggregates(sale.merchant, today)

        audit_service.record_change(
            action="INSERT", table_name="payments", record_id=payment.id,
            user_id=user_id, new_data=payment.to_dict(),
        )
        db.session.commit()
        return payment, sale

    return run_with_retry(_op)


def list_payments(
    *,
    sale_id: int | None = None,
    merchant_id: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[Payment]:
    """Newest first."""
    query = db.session.query(Payment)
    if sale_id is not None:
        query = query.filter(Payment.sale_id == sale_id)
    if merchant_id is not None:
        query = query.filter(Payment.merchant_id == merchant_id)
    if start_date:
        query = query.filter(Payment.payment_date >= start_date)
    if end_date:
        query = query.filter(Payment.payment_date <= end_date)
    return query.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()
