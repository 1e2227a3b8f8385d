# Overview: Flask API routes for payment-due reminders.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import reminder_service
from ..services.reminder_service import ReminderError
from ..time_utils import parse_iso_date
from ..validation import ConflictError, ValidationError
from ..decorators import require_auth, require_role


reminders_bp = Blueprint("reminders", __name__, url_prefix="/api/reminders")


@reminders_bp.post("/run")
@require_auth
@require_role("admin")
def run_batch_route():
    """
    Run the reminder batch now (normally cron runs `flask reminders run`).
    Optional body: date (YYYY-MM-DD), lookahead_days.
    """
    data = request.get_json(silent=True) or {}
    try:
        run_date = parse_iso_date(data.get("date")) if data.get("date") else None
        lookahead = data.get("lookahead_days")
        if lookahead is not None and (not isinstance(lookahead, int) or isinstance(lookahead, bool)):
            return jsonify({"error": "lookahead_days must be an integer"}), 400
        result = reminder_service.run_reminder_batch(today=run_date, lookahead_days=lookahead)
        return jsonify(result.to_dict()), 200
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    except ReminderError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Reminder batch failed")
        return jsonify({"error": "Internal server error"}), 500


@reminders_bp.post("/mark-overdue")
@require_auth
def mark_overdue_route():
    marked = reminder_service.mark_overdue_sales()
    return jsonify({"marked_overdue": marked}), 200


@reminders_bp.get("")
@require_auth
def history_route():
    limit = min(request.args.get("limit", reminder_service.HISTORY_LIMIT, type=int), 500)
    records = reminder_service.list_reminder_history(
        sale_id=request.args.get("sale_id", type=int),
        merchant_id=request.args.get("merchant_id", type=int),
        limit=limit,
    )
    return jsonify({"items": [r.to_dict() for r in records], "count": len(records)}), 200


@reminders_bp.post("")
@require_auth
def log_manual_reminder_route():
    data = request.get_json(silent=True) or {}
    sale_id = data.get("sale_id")
    reminder_type = data.get("reminder_type")
    if not isinstance(sale_id, int) or isinstance(sale_id, bool) or not reminder_type:
        return jsonify({"error": "sale_id (integer) and reminder_type required"}), 400
    try:
        record = reminder_service.log_manual_reminder(
            sale_id=sale_id,
            reminder_type=reminder_type,
            channel=data.get("channel") or "manual",
            user_id=g.current_user.id,
        )
        return jsonify({"reminder": record.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ReminderError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code


@reminders_bp.get("/whatsapp-link/<int:sale_id>")
@require_auth
def whatsapp_link_route(sale_id: int):
    try:
        return jsonify(reminder_service.whatsapp_link(sale_id)), 200
    except ReminderError as e:
        return jsonify({"error": str(e), "details": e.details}), e.status_code
