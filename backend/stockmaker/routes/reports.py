from flask import Blueprint, jsonify, request

from ..decorators import require_auth
from ..services import reporting_service
from ..time_utils import parse_iso_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_report():
    return jsonify(reporting_service.dashboard_stats()), 200


@reports_bp.get("/sales")
@require_auth
def sales_report():
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be YYYY-MM-DD"}), 400

    try:
        report = reporting_service.sales_report(
            start=start,
            end=end,
            group_by=request.args.get("group_by", "day"),
        )
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/alerts")
@require_auth
def alerts_report():
    return jsonify(reporting_service.alerts()), 200
