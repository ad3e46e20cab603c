"""
Notification Blueprint.

Routes:
  GET    /notifications                 – acting user's notifications
  GET    /notifications/unread-count    – bell counter
  POST   /notifications/<nid>/read      – mark one read
  POST   /notifications/read-many       – mark a list read
  POST   /notifications/read-all        – mark everything read
  DELETE /notifications/<nid>           – delete one
"""

import logging

from flask import Blueprint, jsonify, request

from fabtrack.blueprints import current_user_id
from fabtrack.services.notification import NotificationService
from fabtrack.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_service_error_handlers(notification_bp)


@notification_bp.before_request
def _require_user():
    if current_user_id() is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    return None


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)

    items, total = NotificationService.list_for_user(
        current_user_id(), unread_only=unread_only, limit=limit, offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(current_user_id()),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_user_id())})


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(notification_id, current_user_id())
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-many", methods=["POST"])
def mark_many_read():
    """Body: { ids: [int, ...] }"""
    data = request.get_json(silent=True) or {}
    ids = data.get("ids")
    if not isinstance(ids, list) or not all(isinstance(i, int) for i in ids):
        return api_error(E.VALIDATION_INVALID, "ids must be a list of integers")
    count = NotificationService.mark_many_read(ids, current_user_id())
    return jsonify({"marked_read": count})


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_user_id())
    return jsonify({"marked_read": count})


@notification_bp.route("/notifications/<int:notification_id>", methods=["DELETE"])
def delete_notification(notification_id):
    NotificationService.delete(notification_id, current_user_id())
    return jsonify({"deleted": True})
