# Overview: CSV and Excel exports of sales, payments and inventory.

from __future__ import annotations

import csv
import io
from datetime import date

from openpyxl import Workbook
from openpyxl.styles import Font

from ..extensions import db
from ..models import Merchant, Payment, Product
from ..time_utils import today as current_day
from . import sales_service

EXPORT_KINDS = ("sales", "payments", "inventory")
EXPORT_FORMATS = ("csv", "xlsx")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExportError(Exception):
    pass


def rupees(cents: int | None) -> str:
    if cents is None:
        return ""
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def _sales_table(start: date | None, end: date | None) -> tuple[list[str], list[list]]:
    headers = ["Date", "Merchant", "Product", "Quantity", "Rate", "Total", "Paid", "Remaining", "Status", "Due Date"]
    rows = []
    for sale in sales_service.list_sales(start_date=start, end_date=end):
        rows.append([
            sale.sale_date.isoformat(),
            sale.merchant.name if sale.merchant else "",
            sale.product.name if sale.product else "",
            sale.quantity,
            rupees(sale.rate_cents),
            rupees(sale.total_amount_cents),
            rupees(sale.paid_amount_cents),
            rupees(sale.remaining_amount_cents),
            sale.payment_status,
            sale.due_date.isoformat(),
        ])
    return headers, rows


def _payments_table(start: date | None, end: date | None) -> tuple[list[str], list[list]]:
    headers = ["Date", "Merchant", "Sale ID", "Amount", "Method", "Notes"]
    query = db.session.query(Payment, Merchant.name).join(Merchant, Merchant.id == Payment.merchant_id)
    if start:
        query = query.filter(Payment.payment_date >= start)
    if end:
        query = query.filter(Payment.payment_date <= end)
    rows = []
    for payment, merchant_name in query.order_by(Payment.payment_date.desc(), Payment.id.desc()).all():
        rows.append([
            payment.payment_date.isoformat(),
            merchant_name,
            payment.sale_id,
            rupees(payment.amount_cents),
            payment.payment_method,
            payment.notes or "",
        ])
    return headers, rows


def _inventory_table() -> tuple[list[str], list[list]]:
    headers = [
        "Name", "Brand", "Model", "Color", "Storage", "IMEI", "Quantity",
        "Purchase Price", "Selling Price", "Profit", "Status",
    ]
    rows = []
    for p in db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all():
        rows.append([
            p.name,
            p.brand or "",
            p.model or "",
            p.color or "",
            p.storage or "",
            p.imei or "",
            p.quantity,
            rupees(p.purchase_price_cents),
            rupees(p.selling_price_cents),
            rupees(p.profit_cents),
            "Sold" if p.sold else "In stock",
        ])
    return headers, rows


def build_table(kind: str, *, start: date | None = None, end: date | None = None) -> tuple[list[str], list[list]]:
    if kind == "sales":
        return _sales_table(start, end)
    if kind == "payments":
        return _payments_table(start, end)
    if kind == "inventory":
        return _inventory_table()
    raise ExportError(f"kind must be one of: {', '.join(EXPORT_KINDS)}")


def to_csv(headers: list[str], rows: list[list]) -> bytes:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(headers)
    writer.writerows(rows)
    # BOM so Excel opens the rupee sign correctly
    return ("\ufeff" + buf.getvalue()).encode("utf-8")


def to_xlsx(headers: list[str], rows: list[list], title: str) -> bytes:
    wb = Workbook()
    sheet = wb.active
    sheet.title = title[:31]
    sheet.append(headers)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append(row)
    for idx, header in enumerate(headers, start=1):
        width = max([len(str(header))] + [len(str(r[idx - 1])) for r in rows]) + 2
        sheet.column_dimensions[sheet.cell(row=1, column=idx).column_letter].width = min(width, 60)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def export(kind: str, fmt: str, *, start: date | None = None, end: date | None = None) -> tuple[bytes, str, str]:
    """Returns (content, mimetype, filename)."""
    if fmt not in EXPORT_FORMATS:
        raise ExportError(f"format must be one of: {', '.join(EXPORT_FORMATS)}")
    headers, rows = build_table(kind, start=start, end=end)
    stamp = current_day().isoformat()
    if fmt == "csv":
        return to_csv(headers, rows), "text/csv", f"{kind}_{stamp}.csv"
    return to_xlsx(headers, rows, kind.title()), XLSX_MIMETYPE, f"{kind}_{stamp}.xlsx"
