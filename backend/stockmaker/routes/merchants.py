# Overview: Flask API routes for merchants (vyapari) and their udhari ledger.

from flask import Blueprint, request, jsonify, g, current_app

from ..models import Merchant
from ..services import merchant_service
from ..services.merchant_service import MerchantError
from ..validation import ModelValidationPolicy, ValidationError, enforce_rules_merchant, validate_payload
from ..decorators import require_auth, require_role

MERCHANT_POLICY = ModelValidationPolicy(
    writable_fields=set(merchant_service.MERCHANT_MUTABLE_FIELDS),
    required_on_create={"name", "contact"},
)

merchants_bp = Blueprint("merchants", __name__, url_prefix="/api/merchants")


@merchants_bp.get("")
@require_auth
def list_merchants_route():
    merchants = merchant_service.list_merchants(search=request.args.get("search"))
    return jsonify({"items": [m.to_dict() for m in merchants], "count": len(merchants)}), 200


@merchants_bp.get("/risky")
@require_auth
def risky_merchants_route():
    items = merchant_service.list_risky_merchants()
    return jsonify({"items": items, "count": len(items)}), 200


@merchants_bp.post("")
@require_auth
def create_merchant_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Merchant, payload=payload, policy=MERCHANT_POLICY, partial=False)
        enforce_rules_merchant(patch)
        merchant = merchant_service.create_merchant(patch=patch, user_id=g.current_user.id)
        return jsonify({"merchant": merchant}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create merchant")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.get("/<int:merchant_id>")
@require_auth
def get_merchant_route(merchant_id: int):
    try:
        return jsonify({"merchant": merchant_service.get_merchant(merchant_id).to_dict()}), 200
    except MerchantError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@merchants_bp.put("/<int:merchant_id>")
@require_auth
def update_merchant_route(merchant_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Merchant, payload=payload, policy=MERCHANT_POLICY, partial=True)
        enforce_rules_merchant(patch)
        merchant = merchant_service.update_merchant(merchant_id=merchant_id, patch=patch, user_id=g.current_user.id)
        return jsonify({"merchant": merchant}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except MerchantError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update merchant")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.get("/<int:merchant_id>/transactions")
@require_auth
def merchant_transactions_route(merchant_id: int):
    try:
        return jsonify(merchant_service.get_transactions(merchant_id)), 200
    except MerchantError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@merchants_bp.post("/<int:merchant_id>/recalculate")
@require_auth
def recalculate_merchant_route(merchant_id: int):
    try:
        merchant = merchant_service.recalculate_merchant(merchant_id, user_id=g.current_user.id)
        return jsonify({"merchant": merchant}), 200
    except MerchantError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to recalculate merchant balance")
        return jsonify({"error": "Internal server error"}), 500


@merchants_bp.delete("/<int:merchant_id>")
@require_auth
@require_role("admin")
def delete_merchant_route(merchant_id: int):
    """
    Delete the merchant with all of its sales, payments and reminder
    records, returning sold units to stock.
    """
    try:
        summary = merchant_service.delete_merchant_with_sales(merchant_id, user_id=g.current_user.id)
        return jsonify({"deleted": True, **summary}), 200
    except MerchantError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete merchant")
        return jsonify({"error": "Failed to delete merchant; no changes were made"}), 500
