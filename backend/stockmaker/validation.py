from __future__ import annotations
import re
from datetime import date, datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, Date
from sqlalchemy.orm import DeclarativeMeta

from .time_utils import parse_iso_datetime, parse_iso_date


# Maximum price: ₹99,99,999.99 (999,999,999 paise)
MAX_PRICE_CENTS = 999_999_999
MAX_QUANTITY = 1_000_000

IMEI_RE = re.compile(r"^\d{15}$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PHONE_RE = re.compile(r"^\+?[\d\s\-]{7,20}$")

PAYMENT_METHODS = ("cash", "upi", "bank", "cheque", "card", "other")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate IMEI)."""


class NotFoundError(LookupError):
    """404-level missing record."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(field: str, value: Any) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and exponents."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_date(field: str, value: Any) -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO-8601 date (YYYY-MM-DD)")
    if parsed is None:
        raise ValidationError(f"{field} must be an ISO-8601 date (YYYY-MM-DD)")
    return parsed


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
            return value.strip().lower() in ("true", "1")
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        return coerce_date(col.key, value)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against the model's column
    metadata (nullable, type, String length) and the policy allowlist.
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_money(field: str, value: int | None) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """Product rules not captured by column metadata alone."""
    _check_money("purchase_price_cents", patch.get("purchase_price_cents"))
    _check_money("selling_price_cents", patch.get("selling_price_cents"))

    if "quantity" in patch:
        qty = patch["quantity"]
        if qty is None or qty < 0:
            raise ValidationError("quantity must be >= 0")
        if qty > MAX_QUANTITY:
            raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")

    if patch.get("low_stock_threshold") is not None and patch["low_stock_threshold"] < 0:
        raise ValidationError("low_stock_threshold must be >= 0")

    imei = patch.get("imei")
    if imei:
        if not IMEI_RE.match(imei):
            raise ValidationError("imei must be exactly 15 digits")
    elif "imei" in patch:
        # Blank IMEI means "no IMEI"
        patch["imei"] = None


def enforce_rules_merchant(patch: dict) -> None:
    contact = patch.get("contact")
    if contact and not PHONE_RE.match(contact):
        raise ValidationError("contact must be a phone number")
    email = patch.get("email")
    if email:
        if not EMAIL_RE.match(email):
            raise ValidationError("email is not a valid address")
    elif "email" in patch:
        patch["email"] = None


def enforce_rules_sale(*, quantity: int, rate_cents: int, paid_amount_cents: int) -> None:
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
    _check_money("rate_cents", rate_cents)
    if paid_amount_cents < 0:
        raise ValidationError("paid_amount_cents must be >= 0")
    if paid_amount_cents > quantity * rate_cents:
        raise ValidationError("paid_amount_cents cannot exceed the sale total")


def enforce_rules_payment(*, amount_cents: int, remaining_cents: int, payment_method: str) -> None:
    if amount_cents < 0:
        raise ValidationError("amount_cents must be >= 0")
    if amount_cents > remaining_cents:
        raise ValidationError(
            f"amount_cents ({amount_cents}) exceeds the remaining balance ({remaining_cents})"
        )
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
