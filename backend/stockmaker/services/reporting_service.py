# Overview: Dashboard figures, sales summaries and alert lists.

from __future__ import annotations

from collections import OrderedDict
from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import Merchant, Payment, Product, Sale
from ..time_utils import today as current_day
from . import merchant_service, products_service, sales_service

GROUPINGS = ("day", "month")


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _period(d: date, group_by: str) -> str:
    return d.strftime("%Y-%m-%d") if group_by == "day" else d.strftime("%Y-%m")


def dashboard_stats(today: date | None = None) -> dict:
    today = today or current_day()

    stock_units, stock_value = db.session.query(
        func.coalesce(func.sum(Product.quantity), 0),
        func.coalesce(func.sum(Product.quantity * func.coalesce(Product.purchase_price_cents, 0)), 0),
    ).one()

    sales_count, sales_total, collected_at_sale = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount_cents), 0),
        func.coalesce(func.sum(Sale.paid_amount_cents), 0),
    ).one()

    payments_total = db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0)).scalar()
    receivable = db.session.query(func.coalesce(func.sum(Merchant.remaining_balance_cents), 0)).scalar()
    merchant_count = db.session.query(func.count(Merchant.id)).scalar()

    # Realised margin: sale rate against the product's purchase price
    profit = db.session.query(
        func.coalesce(func.sum((Sale.rate_cents - Product.purchase_price_cents) * Sale.quantity), 0)
    ).join(Product, Product.id == Sale.product_id).filter(Product.purchase_price_cents.isnot(None)).scalar()

    overdue = sales_service.list_overdue_sales(today)
    return {
        "as_of": today.isoformat(),
        "stock_units": int(stock_units or 0),
        "stock_value_cents": int(stock_value or 0),
        "product_count": db.session.query(func.count(Product.id)).scalar(),
        "merchant_count": int(merchant_count or 0),
        "sales_count": int(sales_count or 0),
        "sales_total_cents": int(sales_total or 0),
        "collected_cents": int(payments_total or 0),
        "outstanding_cents": int(sales_total or 0) - int(collected_at_sale or 0),
        "receivable_cents": int(receivable or 0),
        "overdue_count": len(overdue),
        "overdue_amount_cents": sum(s.remaining_amount_cents for s in overdue),
        "low_stock_count": len(products_service.list_low_stock()),
        "profit_cents": int(profit or 0),
    }


def sales_report(*, start: date | None, end: date | None, group_by: str = "day") -> dict:
    if group_by not in GROUPINGS:
        raise ReportError("group_by must be day or month")
    if start and end and start > end:
        raise ReportError("start must be on or before end")

    sales = sales_service.list_sales(start_date=start, end_date=end)
    payments = db.session.query(Payment)
    if start:
        payments = payments.filter(Payment.payment_date >= start)
    if end:
        payments = payments.filter(Payment.payment_date <= end)

    rows: "OrderedDict[str, dict]" = OrderedDict()

    def _row(key: str) -> dict:
        return rows.setdefault(key, {
            "period": key, "sales_count": 0, "units_sold": 0,
            "gross_sales_cents": 0, "collected_cents": 0,
        })

    for sale in sorted(sales, key=lambda s: (s.sale_date, s.id)):
        row = _row(_period(sale.sale_date, group_by))
        row["sales_count"] += 1
        row["units_sold"] += sale.quantity
        row["gross_sales_cents"] += sale.total_amount_cents
    for payment in payments.all():
        _row(_period(payment.payment_date, group_by))["collected_cents"] += payment.amount_cents

    return {
        "group_by": group_by,
        "start": start.isoformat() if start else None,
        "end": end.isoformat() if end else None,
        "rows": sorted(rows.values(), key=lambda r: r["period"]),
    }


def alerts(today: date | None = None) -> dict:
    """Everything that needs the shopkeeper's attention today."""
    today = today or current_day()
    return {
        "risky_merchants": merchant_service.list_risky_merchants(today),
        "overdue_sales": [s.to_dict(include_refs=True) for s in sales_service.list_overdue_sales(today)],
        "low_stock": [p.to_dict() for p in products_service.list_low_stock()],
    }
