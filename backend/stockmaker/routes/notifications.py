# Overview: Flask API routes for the current user's in-app notifications.

from flask import Blueprint, request, jsonify, g

from ..services import notification_service
from ..services.notification_service import NotificationError
from ..decorators import require_auth


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications_route():
    unread_only = request.args.get("unread", "false").lower() == "true"
    items = notification_service.list_for_user(g.current_user.id, unread_only=unread_only)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "count": len(items),
        "unread_count": notification_service.unread_count(g.current_user.id),
    }), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(notification_id, g.current_user.id)
        return jsonify({"notification": notification.to_dict()}), 200
    except NotificationError as e:
        return jsonify({"error": str(e)}), e.status_code


@notifications_bp.post("/read-all")
@require_auth
def mark_all_read_route():
    updated = notification_service.mark_all_read(g.current_user.id)
    return jsonify({"updated": updated}), 200
