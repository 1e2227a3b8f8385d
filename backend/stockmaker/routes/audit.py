# Overview: Admin view over the audit trail.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..services import audit_service
from ..time_utils import parse_iso_date


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@require_auth
@require_role("admin")
def list_audit_logs_route():
    """
    Filters: start_date, end_date (YYYY-MM-DD, inclusive), action
    (INSERT/UPDATE/DELETE), table_name. Newest first, at most 500.
    """
    try:
        start = parse_iso_date(request.args.get("start_date"))
        end = parse_iso_date(request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "start_date and end_date must be YYYY-MM-DD"}), 400

    action = request.args.get("action")
    if action and action.upper() not in audit_service.AUDIT_ACTIONS:
        return jsonify({"error": f"action must be one of: {', '.join(audit_service.AUDIT_ACTIONS)}"}), 400

    logs = audit_service.list_audit_logs(
        start_date=start,
        end_date=end,
        action=action,
        table_name=request.args.get("table_name"),
        limit=request.args.get("limit", audit_service.AUDIT_LIST_LIMIT, type=int),
    )
    return jsonify({"items": [entry.to_dict() for entry in logs], "count": len(logs)}), 200
