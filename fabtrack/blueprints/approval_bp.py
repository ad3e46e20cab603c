"""
Approval request Blueprint.

Routes:
  POST   /projects/<pid>/approval-requests      – open a request
  GET    /projects/<pid>/approval-requests      – list a project's requests
  POST   /approval-requests/<rid>/respond       – approve / reject
  DELETE /approval-requests/<rid>               – admin delete
  GET    /approvals/pending                     – acting user's pending queue
"""

import logging

from flask import Blueprint, jsonify, request

from fabtrack.blueprints import current_user_id
from fabtrack.services import approval_workflow
from fabtrack.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

approval_bp = Blueprint("approval_bp", __name__, url_prefix="/api/v1")
register_service_error_handlers(approval_bp)


def _require_user():
    user_id = current_user_id()
    if user_id is None:
        return None, api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    return user_id, None


@approval_bp.route("/projects/<int:project_id>/approval-requests", methods=["POST"])
def create_approval_request(project_id):
    """Body: { approver_id, memo, category?, attachments?: [{file_path, file_name, ...}] }"""
    user_id, err = _require_user()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    approver_id = data.get("approver_id")
    if not isinstance(approver_id, int):
        return api_error(E.VALIDATION_REQUIRED, "approver_id is required")

    approval = approval_workflow.create_approval_request(
        project_id,
        requester_id=user_id,
        approver_id=approver_id,
        memo=data.get("memo", ""),
        category=data.get("category") or "approval_request",
        attachments=data.get("attachments"),
    )
    return jsonify(approval_workflow.approval_summary(approval)), 201


@approval_bp.route("/projects/<int:project_id>/approval-requests", methods=["GET"])
def list_approval_requests(project_id):
    rows = approval_workflow.list_approval_requests(project_id, status=request.args.get("status"))
    return jsonify(rows)


@approval_bp.route("/approval-requests/<int:request_id>/respond", methods=["POST"])
def respond(request_id):
    """Body: { status: approved|rejected, response_memo? }"""
    user_id, err = _require_user()
    if err:
        return err
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    approval_workflow.respond_to_approval_request(
        request_id, user_id, data["status"], data.get("response_memo"),
    )
    return jsonify({"success": True, "id": request_id, "status": data["status"]})


@approval_bp.route("/approval-requests/<int:request_id>", methods=["DELETE"])
def delete_approval_request(request_id):
    user_id, err = _require_user()
    if err:
        return err
    approval_workflow.delete_approval_request(request_id, user_id)
    return jsonify({"deleted": True})


@approval_bp.route("/approvals/pending", methods=["GET"])
def pending_approvals():
    user_id, err = _require_user()
    if err:
        return err
    return jsonify(approval_workflow.get_pending_approvals_for_user(user_id))
