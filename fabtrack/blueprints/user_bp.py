"""
User sign-up and approval Blueprint.

Routes:
  POST   /users                  – sign up (pending)
  GET    /users?status=          – list by approval status (admin)
  GET    /users/<uid>/status     – approval status of one user
  POST   /users/<uid>/approve    – admin approves
  POST   /users/<uid>/reject     – admin rejects, optional reason
  DELETE /users/<uid>            – admin deletes
"""

import logging

from flask import Blueprint, jsonify, request

from fabtrack.blueprints import current_user_id
from fabtrack.services import user_approval
from fabtrack.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

user_bp = Blueprint("user_bp", __name__, url_prefix="/api/v1")
register_service_error_handlers(user_bp)


@user_bp.route("/users", methods=["POST"])
def sign_up():
    """Body: { email, name, phone?, department?, role? }"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    user = user_approval.register_user(
        data.get("email"),
        data.get("name"),
        phone=data.get("phone"),
        department=data.get("department"),
        role=data.get("role", "member"),
    )
    return jsonify(user.to_dict()), 201


@user_bp.route("/users", methods=["GET"])
def list_users():
    status = request.args.get("status", "pending")
    return jsonify([u.to_dict() for u in user_approval.get_users_by_status(status)])


@user_bp.route("/users/<int:user_id>/status", methods=["GET"])
def user_status(user_id):
    return jsonify(user_approval.check_user_approval_status(user_id))


@user_bp.route("/users/<int:user_id>/approve", methods=["POST"])
def approve_user(user_id):
    admin_id = current_user_id()
    if admin_id is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    user = user_approval.approve_user(user_id, admin_id)
    return jsonify(user.to_dict())


@user_bp.route("/users/<int:user_id>/reject", methods=["POST"])
def reject_user(user_id):
    """Body: { reason? }"""
    admin_id = current_user_id()
    if admin_id is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    data = request.get_json(silent=True) or {}
    user = user_approval.reject_user(user_id, admin_id, data.get("reason"))
    return jsonify(user.to_dict())


@user_bp.route("/users/<int:user_id>", methods=["DELETE"])
def delete_user(user_id):
    admin_id = current_user_id()
    if admin_id is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    user_approval.delete_user(user_id, admin_id)
    return jsonify({"deleted": True})
