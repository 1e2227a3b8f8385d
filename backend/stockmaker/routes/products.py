# Overview: Flask API routes for stock items; parses input and returns JSON responses.

"""
Product (stock) routes.

All routes require authentication; deleting a product is admin-only.
"""
from flask import Blueprint, request, g, current_app

from ..models import Product
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(products_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"name"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params: search, category, brand, in_stock (true/false),
    page and per_page (optional pagination, max 100 per page).
    """
    result = products_service.list_products(
        search=request.args.get("search"),
        category=request.args.get("category"),
        brand=request.args.get("brand"),
        in_stock=_bool_arg("in_stock"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return result


@products_bp.get("/low-stock")
@require_auth
def low_stock_route():
    items = products_service.list_low_stock()
    return {"items": [p.to_dict() for p in items], "count": len(items)}


@products_bp.get("/imei-check")
@require_auth
def imei_check_route():
    """Pre-submit duplicate check; pass exclude_id when editing."""
    imei = (request.args.get("imei") or "").strip()
    if not imei:
        return {"error": "imei is required"}, 400
    dup = products_service.find_imei_duplicate(imei, request.args.get("exclude_id", type=int))
    return {
        "imei": imei,
        "duplicate": dup is not None,
        "product": dup.to_dict() if dup else None,
    }


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    product = products_service.get_product_dict(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return product


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(patch=patch, user_id=g.current_user.id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created, 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = products_service.update_product(product_id=product_id, patch=patch, user_id=g.current_user.id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update product")
        return {"error": "Internal server error"}, 500

    if updated is None:
        return {"error": "Product not found"}, 404
    return updated


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role("admin")
def delete_product_route(product_id: int):
    try:
        deleted = products_service.delete_product(product_id=product_id, user_id=g.current_user.id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return {"error": "Internal server error"}, 500

    if not deleted:
        return {"error": "Product not found"}, 404
    return {"deleted": True, "id": product_id}
