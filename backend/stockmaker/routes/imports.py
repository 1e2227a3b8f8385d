# Overview: Flask API routes for bulk sales import and spreadsheet exports.

"""
Import / Export Routes

Imports accept CSV or Excel (.xlsx) uploads, or JSON rows. Exports stream
CSV or Excel files.
"""

from flask import Blueprint, Response, request, jsonify, g, current_app

from ..decorators import require_auth
from ..services import export_service, import_service
from ..services.export_service import ExportError
from ..services.import_service import SalesImportError
from ..time_utils import parse_iso_date


imports_bp = Blueprint("imports", __name__, url_prefix="/api")


@imports_bp.get("/imports/sales/template")
@require_auth
def sales_template_route():
    return Response(
        import_service.template_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=sales_import_template.csv"},
    )


@imports_bp.post("/imports/sales")
@require_auth
def import_sales_route():
    try:
        if "file" in request.files:
            upload = request.files["file"]
            rows = import_service.read_rows(upload.filename or "", upload.stream)
        else:
            data = request.get_json(silent=True) or {}
            rows = data.get("rows")
        result = import_service.import_sales(rows, user_id=g.current_user.id)
        status = 201 if result["created"] else 400
        return jsonify(result), status
    except SalesImportError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to import sales")
        return jsonify({"error": "Failed to parse upload"}), 400


@imports_bp.get("/exports/<kind>")
@require_auth
def export_route(kind: str):
    """?format=csv|xlsx, optional start/end dates for sales and payments."""
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        return jsonify({"error": "start and end must be YYYY-MM-DD"}), 400

    try:
        content, mimetype, filename = export_service.export(
            kind, request.args.get("format", "csv").lower(), start=start, end=end,
        )
    except ExportError as e:
        return jsonify({"error": str(e)}), 400

    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
