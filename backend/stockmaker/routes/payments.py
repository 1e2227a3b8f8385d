# Overview: Flask API routes for payment collection.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import payment_service
from ..services.payment_service import PaymentError
from ..time_utils import parse_iso_date
from ..validation import ValidationError
from ..decorators import require_auth


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
def record_payment_route():
    """
    Collect money against a sale.

    Body: sale_id, amount_cents, optional merchant_id, payment_date,
    payment_method, notes. The amount may not exceed the sale's
    remaining balance.
    """
    try:
        parsed = payment_service.parse_payment_input(request.get_json(silent=True) or {})
        payment, sale = payment_service.record_payment(user_id=g.current_user.id, **parsed)
        return jsonify({"payment": payment.to_dict(), "sale": sale.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PaymentError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("")
@require_auth
def list_payments_route():
    try:
        start = parse_iso_date(request.args.get("start_date"))
        end = parse_iso_date(request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "start_date and end_date must be YYYY-MM-DD"}), 400

    payments = payment_service.list_payments(
        sale_id=request.args.get("sale_id", type=int),
        merchant_id=request.args.get("merchant_id", type=int),
        start_date=start,
        end_date=end,
    )
    return jsonify({
        "items": [p.to_dict() for p in payments],
        "count": len(payments),
        "total_cents": sum(p.amount_cents for p in payments),
    }), 200
