# Overview: Bulk sales import from CSV/Excel sheets.

"""
Sales Import

Rows follow the downloadable template:

    vyapari_name,product_name,quantity,rate,paid_amount,due_date,notes

Merchants and products are matched by name, case-insensitively. Amounts
are in rupees. Every valid row goes through the normal sale recording
flow in its own transaction; a bad row is reported and skipped, it never
aborts the rows around it.
"""

from __future__ import annotations

import csv
import io
from decimal import Decimal, InvalidOperation

from openpyxl import load_workbook

from ..extensions import db
from ..models import Product
from ..validation import ValidationError, coerce_date, coerce_int
from . import merchant_service, sales_service
from .sales_service import SaleError

TEMPLATE_COLUMNS = ["vyapari_name", "product_name", "quantity", "rate", "paid_amount", "due_date", "notes"]
REQUIRED_COLUMNS = ["vyapari_name", "product_name", "quantity", "rate", "due_date"]
MAX_IMPORT_ROWS = 1000


class SalesImportError(Exception):
    pass


def template_csv() -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(TEMPLATE_COLUMNS)
    writer.writerow(["Sharma Mobiles", "Redmi Note 13", "2", "15000", "5000", "2026-12-31", "Diwali stock"])
    return buf.getvalue()


def read_rows(filename: str, stream) -> list[dict]:
    """Parse an uploaded .csv or .xlsx file into header-keyed dicts."""
    ext = (filename or "").rsplit(".", 1)[-1].lower()
    if ext == "csv":
        try:
            text = stream.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise SalesImportError("CSV file must be UTF-8 encoded")
        return [row for row in csv.DictReader(io.StringIO(text))]
    if ext in {"xlsx", "xlsm"}:
        wb = load_workbook(stream, read_only=True, data_only=True)
        data = list(wb.active.values)
        if not data:
            return []
        headers = [str(h).strip() if h is not None else "" for h in data[0]]
        return [
            {headers[i]: row[i] for i in range(min(len(headers), len(row)))}
            for row in data[1:]
            if any(v not in (None, "") for v in row)
        ]
    raise SalesImportError("Unsupported file format (use .csv or .xlsx)")


def rupees_to_cents(field: str, value) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    try:
        amount = Decimal(str(value).strip().replace(",", ""))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    cents = amount * 100
    if cents != cents.to_integral_value():
        raise ValidationError(f"{field} cannot have more than 2 decimal places")
    return int(cents)


def _normalize(row: dict) -> dict:
    out = {}
    for key, value in row.items():
        if key is None:
            continue
        k = str(key).strip().lower().replace(" ", "_")
        out[k] = value.strip() if isinstance(value, str) else value
    return out


def _find_product(name: str) -> Product | None:
    """Prefer a matching product that still has stock."""
    return (
        db.session.query(Product)
        .filter(db.func.lower(Product.name) == name.strip().lower())
        .order_by(Product.quantity.desc(), Product.id.asc())
        .first()
    )


def parse_import_row(row: dict) -> dict:
    row = _normalize(row)
    missing = [c for c in REQUIRED_COLUMNS if row.get(c) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required columns: {', '.join(missing)}")

    merchant = merchant_service.find_by_name(str(row["vyapari_name"]))
    if not merchant:
        raise ValidationError(f"Vyapari '{row['vyapari_name']}' not found")
    product = _find_product(str(row["product_name"]))
    if not product:
        raise ValidationError(f"Product '{row['product_name']}' not found")

    quantity = row["quantity"]
    if isinstance(quantity, float) and quantity.is_integer():
        quantity = int(quantity)

    return {
        "merchant_id": merchant.id,
        "product_id": product.id,
        "quantity": coerce_int("quantity", quantity),
        "rate_cents": rupees_to_cents("rate", row["rate"]),
        "paid_amount_cents": rupees_to_cents("paid_amount", row.get("paid_amount")),
        "due_date": coerce_date("due_date", row["due_date"]),
        "notes": str(row["notes"]) if row.get("notes") not in (None, "") else None,
    }


def import_sales(rows: list[dict], user_id: int | None) -> dict:
    if not isinstance(rows, list):
        raise SalesImportError("rows must be a list")
    if len(rows) > MAX_IMPORT_ROWS:
        raise SalesImportError(f"At most {MAX_IMPORT_ROWS} rows can be imported at once")

    created: list[int] = []
    errors: list[dict] = []
    # Row numbers match the spreadsheet (header is row 1)
    for line_no, row in enumerate(rows, start=2):
        try:
            if not isinstance(row, dict):
                raise ValidationError("Row must be an object")
            parsed = parse_import_row(row)
            sale = sales_service.record_sale(user_id=user_id, **parsed)
            created.append(sale.id)
        except (ValidationError, SaleError) as exc:
            errors.append({"row": line_no, "error": str(exc)})

    return {
        "total": len(rows),
        "created": len(created),
        "failed": len(errors),
        "sale_ids": created,
        "errors": errors,
    }
