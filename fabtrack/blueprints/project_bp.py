"""
Project & process-stage Blueprint.

Routes:
  GET    /projects                              – filtered, paginated list
  POST   /projects                              – create project with 14 stages
  GET    /projects/stats                        – dashboard counters
  GET    /projects/<pid>                        – project with stages + progress
  PUT    /projects/<pid>                        – update fields and/or stages
  DELETE /projects/<pid>                        – delete project
  POST   /projects/<pid>/favorite               – toggle bookmark
  GET    /projects/<pid>/stages                 – stage rows + current stage
  PATCH  /projects/<pid>/stages/<stage_name>    – update one stage
  PATCH  /projects/<pid>/stages                 – batch stage update
  POST   /projects/<pid>/stages/next            – complete current, start next
"""

import logging

from flask import Blueprint, jsonify, request

from fabtrack.blueprints import current_user_id, page_args
from fabtrack.services import project_service, stage_lifecycle
from fabtrack.services.current_stage import resolve_current_stage
from fabtrack.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

project_bp = Blueprint("project_bp", __name__, url_prefix="/api/v1")
register_service_error_handlers(project_bp)


def _bool_arg(name):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes")


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects", methods=["GET"])
def list_projects():
    page, page_size = page_args()
    filters = {
        "search": request.args.get("search"),
        "current_process_stage": request.args.get("current_process_stage"),
        "is_urgent": _bool_arg("is_urgent"),
        "created_by": request.args.get("created_by", type=int),
        "order_date_from": request.args.get("order_date_from"),
        "order_date_to": request.args.get("order_date_to"),
        "favorites_only": _bool_arg("favorites_only"),
    }
    result = project_service.list_projects(
        filters,
        sort=request.args.get("sort", "created_at"),
        direction=request.args.get("direction", "desc"),
        page=page,
        page_size=page_size,
        user_id=current_user_id(),
    )
    return jsonify(result)


@project_bp.route("/projects", methods=["POST"])
def create_project():
    """Create a project.

    Body: { site_name, product_name, ..., process_stages?: {name: {status, start_date, ...}} }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    stages = data.pop("process_stages", None)
    project = project_service.create_project(data, stages=stages, creator_id=current_user_id())
    return jsonify(project_service.project_detail(project)), 201


@project_bp.route("/projects/stats", methods=["GET"])
def project_stats():
    return jsonify(project_service.project_stats())


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(project_id)
    return jsonify(project_service.project_detail(project, user_id=current_user_id()))


@project_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    stages = data.pop("process_stages", None)
    project = project_service.update_project(project_id, data, stages=stages, actor_id=current_user_id())
    return jsonify(project_service.project_detail(project))


@project_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project_service.delete_project(project_id, actor_id=current_user_id())
    return jsonify({"deleted": True})


@project_bp.route("/projects/<int:project_id>/favorite", methods=["POST"])
def toggle_favorite(project_id):
    user_id = current_user_id()
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "X-User-Id header is required")
    state = project_service.toggle_favorite(project_id, user_id)
    return jsonify({"project_id": project_id, "is_favorite": state})


# ═════════════════════════════════════════════════════════════════════════════
# STAGES
# ═════════════════════════════════════════════════════════════════════════════

@project_bp.route("/projects/<int:project_id>/stages", methods=["GET"])
def list_stages(project_id):
    project = project_service.get_project(project_id)
    stages = project.process_stages
    return jsonify({
        "project_id": project.id,
        "current_process_stage": project.current_process_stage,
        "resolved_stage": resolve_current_stage(stages),
        "progress": stage_lifecycle.progress_percent(stages),
        "stages": [s.to_dict() for s in stages],
    })


@project_bp.route("/projects/<int:project_id>/stages/<stage_name>", methods=["PATCH"])
def update_stage(project_id, stage_name):
    patch = request.get_json(silent=True)
    if not isinstance(patch, dict) or not patch:
        return api_error(E.VALIDATION_REQUIRED, "Stage patch body is required")
    stage = stage_lifecycle.update_stage(project_id, stage_name, patch, actor_id=current_user_id())
    return jsonify(stage.to_dict())


@project_bp.route("/projects/<int:project_id>/stages", methods=["PATCH"])
def update_stages(project_id):
    """Body: { updates: [{stage_name, status?, start_date?, ...}] }"""
    data = request.get_json(silent=True) or {}
    updates = data.get("updates")
    if not isinstance(updates, list) or not updates:
        return api_error(E.VALIDATION_REQUIRED, "updates must be a non-empty list")
    stages = stage_lifecycle.update_stages(project_id, updates, actor_id=current_user_id())
    return jsonify([s.to_dict() for s in stages])


@project_bp.route("/projects/<int:project_id>/stages/next", methods=["POST"])
def move_to_next_stage(project_id):
    stage = stage_lifecycle.move_to_next_stage(project_id, actor_id=current_user_id())
    project = project_service.get_project(project_id)
    return jsonify({
        "advanced_to": stage.to_dict() if stage else None,
        "current_process_stage": project.current_process_stage,
        "progress": stage_lifecycle.progress_percent(project.process_stages),
    })
