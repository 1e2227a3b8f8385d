# backend/stockmaker/services/products_service.py
"""
Products Service

Catalogue CRUD, the IMEI duplicate guard, low-stock listing and the
atomic stock delta used by the sales and merchant flows.
"""
from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Sale
from ..time_utils import today
from ..validation import ConflictError, NotFoundError
from . import audit_service
from .concurrency import run_with_retry

PRODUCT_MUTABLE_FIELDS = {
    "name", "category", "brand", "model", "color", "storage", "country_variant",
    "imei", "barcode", "unit", "purchase_price_cents", "selling_price_cents",
    "quantity", "low_stock_threshold", "customer_name", "notes",
}


class InsufficientStockError(Exception):
    def __init__(self, product_id: int, requested: int):
        super().__init__(f"Insufficient stock for product {product_id}")
        self.product_id = product_id
        self.requested = requested


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def find_imei_duplicate(imei: str | None, exclude_product_id: int | None = None) -> Product | None:
    """Another product carrying this IMEI, ignoring `exclude_product_id`."""
    if not imei:
        return None
    query = db.session.query(Product).filter(Product.imei == imei)
    if exclude_product_id is not None:
        query = query.filter(Product.id != exclude_product_id)
    return query.first()


def _ensure_imei_free(imei: str | None, exclude_product_id: int | None = None) -> None:
    dup = find_imei_duplicate(imei, exclude_product_id)
    if dup:
        raise ConflictError(f"IMEI {imei} is already registered to product {dup.id} ({dup.name})")


def _flush_product(p: Product) -> None:
    try:
        db.session.flush()
    except IntegrityError:
        # ix_products_imei: another transaction registered the IMEI first
        db.session.rollback()
        raise ConflictError(f"IMEI {p.imei} is already registered to another product")


def low_stock_threshold_for(p: Product) -> int:
    if p.low_stock_threshold is not None:
        return p.low_stock_threshold
    return current_app.config["LOW_STOCK_DEFAULT_THRESHOLD"]


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
    brand: str | None = None,
    in_stock: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    base_query = db.session.query(Product)
    if search:
        like = f"%{search.strip()}%"
        base_query = base_query.filter(or_(
            Product.name.ilike(like),
            Product.brand.ilike(like),
            Product.model.ilike(like),
            Product.imei.ilike(like),
            Product.barcode.ilike(like),
        ))
    if category:
        base_query = base_query.filter(Product.category == category)
    if brand:
        base_query = base_query.filter(Product.brand == brand)
    if in_stock is True:
        base_query = base_query.filter(Product.quantity > 0)
    elif in_stock is False:
        base_query = base_query.filter(Product.quantity == 0)

    base_query = base_query.order_by(Product.created_at.desc(), Product.id.desc())

    if page is None:
        products = base_query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def list_low_stock() -> list[Product]:
    """Products at or under their threshold (or the shop default)."""
    default = current_app.config["LOW_STOCK_DEFAULT_THRESHOLD"]
    threshold = db.func.coalesce(Product.low_stock_threshold, default)
    return (
        db.session.query(Product)
        .filter(Product.quantity <= threshold)
        .order_by(Product.quantity.asc(), Product.name.asc())
        .all()
    )


def create_product(*, patch: dict, user_id: int | None) -> dict:
    """Create a product from a validated patch. Duplicate IMEI -> ConflictError."""
    def _op():
        _ensure_imei_free(patch.get("imei"))

        p = Product(created_by_user_id=user_id)
        apply_product_patch(p, patch)
        if p.quantity is None:
            p.quantity = 0
        db.session.add(p)
        _flush_product(p)

        audit_service.record_change(
            action="INSERT", table_name="products", record_id=p.id,
            user_id=user_id, new_data=p.to_dict(),
        )
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def update_product(*, product_id: int, patch: dict, user_id: int | None) -> dict | None:
    """Returns None when the product does not exist."""
    def _op():
        p = db.session.get(Product, product_id)
        if not p:
            return None

        if "imei" in patch and patch["imei"] != p.imei:
            _ensure_imei_free(patch["imei"], exclude_product_id=p.id)

        old = p.to_dict()
        apply_product_patch(p, patch)
        if "quantity" in patch:
            _sync_sold_flag(p)
        _flush_product(p)

        audit_service.record_change(
            action="UPDATE", table_name="products", record_id=p.id,
            user_id=user_id, old_data=old, new_data=p.to_dict(),
        )
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def delete_product(*, product_id: int, user_id: int | None) -> bool:
    """
    Hard delete. Products referenced by sales cannot be deleted; delete
    the sales first so stock and balances are unwound.
    """
    def _op():
        p = db.session.get(Product, product_id)
        if not p:
            return False

        in_use = db.session.query(Sale.id).filter(Sale.product_id == p.id).first()
        if in_use:
            raise ConflictError("Product has sales recorded against it and cannot be deleted")

        old = p.to_dict()
        db.session.delete(p)
        audit_service.record_change(
            action="DELETE", table_name="products", record_id=product_id,
            user_id=user_id, old_data=old,
        )
        db.session.commit()
        return True

    return run_with_retry(_op)


def _sync_sold_flag(p: Product) -> None:
    if p.quantity == 0 and not p.sold:
        p.sold = True
        p.sold_date = today()
    elif p.quantity > 0 and p.sold:
        p.sold = False
        p.sold_date = None


def apply_stock_delta(product_id: int, delta: int, *, on_date: date) -> None:
    """
    Move stock by `delta` with a store-evaluated update, inside the
    caller's transaction.

    A decrement only matches while quantity >= |delta|; when no row
    matches InsufficientStockError is raised and the caller rolls back.
    The sold flag follows the new quantity. Does not commit.
    """
    bump = {Product.version_id: Product.version_id + 1}

    query = db.session.query(Product).filter(Product.id == product_id)
    if delta < 0:
        query = query.filter(Product.quantity >= -delta)
    updated = query.update(
        {Product.quantity: Product.quantity + delta, **bump},
        synchronize_session=False,
    )
    if updated == 0:
        if delta < 0:
            raise InsufficientStockError(product_id, -delta)
        raise NotFoundError(f"Product {product_id} not found")

    if delta < 0:
        db.session.query(Product).filter(
            Product.id == product_id, Product.quantity == 0, Product.sold.is_(False),
        ).update({Product.sold: True, Product.sold_date: on_date, **bump}, synchronize_session=False)
    else:
        db.session.query(Product).filter(
            Product.id == product_id, Product.quantity > 0, Product.sold.is_(True),
        ).update({Product.sold: False, Product.sold_date: None, **bump}, synchronize_session=False)


def get_product_dict(product_id: int) -> dict | None:
    p = db.session.get(Product, product_id)
    return p.to_dict() if p else None
