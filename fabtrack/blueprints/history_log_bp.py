"""
Activity log Blueprint.

Routes:
  POST   /projects/<pid>/logs           – add a manual note
  GET    /projects/<pid>/logs           – project timeline
  GET    /logs                          – global feed (filters optional)
  GET    /users/<uid>/logs              – logs authored by a user
  DELETE /logs/<lid>                    – soft delete (author or admin)
  POST   /logs/<lid>/attachments        – register stored files on a log
  DELETE /attachments/<aid>             – remove an attachment
"""

import logging

from flask import Blueprint, jsonify, request

from fabtrack.blueprints import current_user_id, page_args
from fabtrack.services import activity_log
from fabtrack.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

history_log_bp = Blueprint("history_log_bp", __name__, url_prefix="/api/v1")
register_service_error_handlers(history_log_bp)

_FILTER_KEYS = ("category", "log_type", "approval_status", "start_date", "end_date")
_INT_FILTER_KEYS = ("project_id", "author_id", "target_user_id")


@history_log_bp.route("/projects/<int:project_id>/logs", methods=["POST"])
def create_log(project_id):
    """Body: { category, content, attachments? }"""
    user_id = current_user_id()
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    data = request.get_json(silent=True) or {}
    if not data.get("category"):
        return api_error(E.VALIDATION_REQUIRED, "category is required")

    log = activity_log.create_manual_log(
        project_id, user_id, data["category"], data.get("content", ""),
        attachments=data.get("attachments"),
    )
    return jsonify(log.to_dict()), 201


@history_log_bp.route("/projects/<int:project_id>/logs", methods=["GET"])
def list_project_logs(project_id):
    page, page_size = page_args()
    return jsonify(activity_log.list_project_logs(project_id, page, page_size))


@history_log_bp.route("/logs", methods=["GET"])
def list_logs():
    page, page_size = page_args()
    filters = {k: request.args.get(k) for k in _FILTER_KEYS if request.args.get(k)}
    for key in _INT_FILTER_KEYS:
        value = request.args.get(key, type=int)
        if value is not None:
            filters[key] = value

    if filters:
        return jsonify(activity_log.filter_logs(filters, page, page_size))
    mine = request.args.get("mine", "").lower() in ("1", "true", "yes")
    return jsonify(activity_log.global_feed(page, page_size, user_id=current_user_id() if mine else None))


@history_log_bp.route("/users/<int:user_id>/logs", methods=["GET"])
def user_logs(user_id):
    page, page_size = page_args()
    return jsonify(activity_log.user_activity(user_id, page, page_size))


@history_log_bp.route("/logs/<int:log_id>", methods=["DELETE"])
def delete_log(log_id):
    user_id = current_user_id()
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    activity_log.soft_delete_log(log_id, user_id)
    return jsonify({"deleted": True})


@history_log_bp.route("/logs/<int:log_id>/attachments", methods=["POST"])
def add_attachments(log_id):
    """Body: { attachments: [{file_path, file_name, file_size?, mime_type?}] }"""
    user_id = current_user_id()
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    data = request.get_json(silent=True) or {}
    if "attachments" not in data:
        return api_error(E.VALIDATION_REQUIRED, "attachments is required")

    rows = activity_log.add_attachments(log_id, data["attachments"], user_id)
    return jsonify([a.to_dict() for a in rows]), 201


@history_log_bp.route("/attachments/<int:attachment_id>", methods=["DELETE"])
def delete_attachment(attachment_id):
    user_id = current_user_id()
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    outcome = activity_log.delete_attachment(attachment_id, user_id)
    return jsonify({"deleted": True, "blob_removed": outcome.ok})
