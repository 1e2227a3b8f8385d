# Overview: Flask API routes for credit sales; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import sales_service
from ..services.sales_service import SaleError
from ..models.sales import SALE_STATUSES
from ..time_utils import parse_iso_date
from ..validation import ValidationError
from ..decorators import require_auth, require_role


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a credit sale.

    Body: merchant_id, product_id, quantity, rate_cents, due_date,
    optional paid_amount_cents, sale_date, notes, payment_method.
    """
    try:
        parsed = sales_service.parse_sale_input(request.get_json(silent=True) or {})
        sale = sales_service.record_sale(user_id=g.current_user.id, **parsed)
        return jsonify({"sale": sale.to_dict(include_refs=True)}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    try:
        status = request.args.get("status")
        if status and status not in SALE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")
        sales = sales_service.list_sales(
            merchant_id=request.args.get("merchant_id", type=int),
            status=status,
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            limit=request.args.get("limit", type=int),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"items": [s.to_dict(include_refs=True) for s in sales], "count": len(sales)}), 200


@sales_bp.get("/outstanding")
@require_auth
def outstanding_sales_route():
    sales = sales_service.list_outstanding_sales()
    return jsonify({
        "items": [s.to_dict(include_refs=True) for s in sales],
        "count": len(sales),
        "total_remaining_cents": sum(s.remaining_amount_cents for s in sales),
    }), 200


@sales_bp.get("/overdue")
@require_auth
def overdue_sales_route():
    sales = sales_service.list_overdue_sales()
    return jsonify({
        "items": [s.to_dict(include_refs=True) for s in sales],
        "count": len(sales),
        "total_remaining_cents": sum(s.remaining_amount_cents for s in sales),
    }), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
    except SaleError as e:
        return jsonify({"error": str(e)}), e.status_code
    return jsonify({"sale": sale.to_dict(include_refs=True)}), 200


@sales_bp.patch("/<int:sale_id>")
@require_auth
def update_sale_route(sale_id: int):
    """Only due_date and notes can change after a sale is recorded."""
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.update_sale(
            sale_id=sale_id,
            user_id=g.current_user.id,
            due_date=data.get("due_date"),
            notes=data.get("notes"),
            fields=set(data.keys()),
        )
        return jsonify({"sale": sale.to_dict(include_refs=True)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_role("admin")
def delete_sale_route(sale_id: int):
    """Delete a sale and put its quantity back into stock."""
    try:
        summary = sales_service.delete_sale(sale_id, user_id=g.current_user.id)
        return jsonify({"deleted": True, **summary}), 200
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Failed to delete sale; no changes were made"}), 500
