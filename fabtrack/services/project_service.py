"""Project CRUD, listing, favorites and dashboard statistics.

Create and update share one validator: required project fields plus the
stage-plan rules from ``stage_lifecycle.validate_stage_plan``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, or_

from fabtrack.core.exceptions import NotFoundError, ValidationError
from fabtrack.models import db
from fabtrack.models.audit import record_project_event
from fabtrack.models.auth import User
from fabtrack.models.history_log import HistoryLog, HistoryLogAttachment
from fabtrack.models.project import (
    PROCESS_STAGES,
    STAGE_STATUSES,
    ProcessStage,
    Project,
    ProjectFavorite,
)
from fabtrack.services import stage_lifecycle
from fabtrack.services.saga import run_step
from fabtrack.utils.helpers import commit_or_raise, get_or_raise, paginate, parse_date

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "site_name",
    "product_name",
    "outsourcing_company",
    "sales_manager_id",
    "site_manager_id",
    "order_date",
    "expected_completion_date",
    "installation_request_date",
)
_TEXT_FIELDS = ("site_name", "product_name", "outsourcing_company", "thumbnail_url", "notes")
_DATE_FIELDS = ("order_date", "expected_completion_date", "installation_request_date")
_USER_FIELDS = ("sales_manager_id", "site_manager_id")

SORT_FIELDS = {
    "created_at": Project.created_at,
    "updated_at": Project.updated_at,
    "site_name": Project.site_name,
    "order_date": Project.order_date,
    "expected_completion_date": Project.expected_completion_date,
}


# ── Validation ───────────────────────────────────────────────────────────────


def _normalise_stage_input(stages) -> dict:
    """Accept {name: fields} or [{stage_name, ...}] and return {name: fields}."""
    if not stages:
        return {}
    if isinstance(stages, dict):
        return {k: dict(v or {}) for k, v in stages.items()}
    out = {}
    for item in stages:
        item = dict(item)
        name = item.pop("stage_name", None)
        out[name] = item
    return out


def _clean_project_fields(data: dict, *, partial: bool) -> dict:
    """Validate and coerce project attributes; raises ValidationError."""
    errors = {}
    clean = {}

    for f in _TEXT_FIELDS:
        if f in data:
            val = data[f]
            clean[f] = val.strip() if isinstance(val, str) else val
    for f in _DATE_FIELDS:
        if f in data:
            parsed = parse_date(data[f])
            if data[f] and parsed is None:
                errors[f] = "invalid date"
            clean[f] = parsed
    for f in _USER_FIELDS:
        if f in data:
            uid = data[f]
            if uid is not None and db.session.get(User, uid) is None:
                errors[f] = f"user {uid} not found"
            clean[f] = uid
    if "product_quantity" in data:
        try:
            qty = int(data["product_quantity"])
        except (TypeError, ValueError):
            qty = 0
        if qty < 1:
            errors["product_quantity"] = "must be a positive integer"
        clean["product_quantity"] = qty
    if "is_urgent" in data:
        clean["is_urgent"] = bool(data["is_urgent"])

    for f in REQUIRED_FIELDS:
        if (f in clean or not partial) and not clean.get(f):
            errors.setdefault(f, "required")

    if errors:
        raise ValidationError("Invalid project fields", details=errors)
    return clean


def _default_plan() -> dict:
    return {name: {"status": "in_progress" if name == "contract" else "waiting"} for name in PROCESS_STAGES}


# ── Read ─────────────────────────────────────────────────────────────────────


def get_project(project_id: int) -> Project:
    return get_or_raise(Project, project_id)


def project_detail(project: Project, user_id: int | None = None) -> dict:
    d = project.to_dict(include_stages=True)
    d["progress"] = stage_lifecycle.progress_percent(project.process_stages)
    if user_id is not None:
        d["is_favorite"] = project.favorites.filter_by(user_id=user_id).count() > 0
    return d


def list_projects(
    filters: dict | None = None,
    *,
    sort: str = "created_at",
    direction: str = "desc",
    page: int = 1,
    page_size: int = 20,
    user_id: int | None = None,
) -> dict:
    """Filtered, sorted, paginated project list.

    Filters: search, current_process_stage, is_urgent, created_by,
    order_date_from, order_date_to, favorites_only (needs ``user_id``).
    """
    filters = filters or {}
    q = Project.query

    search = (filters.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Project.site_name.ilike(like),
            Project.product_name.ilike(like),
            Project.outsourcing_company.ilike(like),
        ))
    if filters.get("current_process_stage"):
        q = q.filter(Project.current_process_stage == filters["current_process_stage"])
    if filters.get("is_urgent") is not None:
        q = q.filter(Project.is_urgent.is_(bool(filters["is_urgent"])))
    if filters.get("created_by"):
        q = q.filter(Project.created_by == filters["created_by"])
    date_from = parse_date(filters.get("order_date_from"))
    if date_from:
        q = q.filter(Project.order_date >= date_from)
    date_to = parse_date(filters.get("order_date_to"))
    if date_to:
        q = q.filter(Project.order_date <= date_to)
    if filters.get("favorites_only"):
        if user_id is None:
            raise ValidationError("favorites_only requires a user", details={"user_id": "required"})
        q = q.join(ProjectFavorite, ProjectFavorite.project_id == Project.id).filter(
            ProjectFavorite.user_id == user_id,
        )

    column = SORT_FIELDS.get(sort, Project.created_at)
    q = q.order_by(column.asc() if direction == "asc" else column.desc(), Project.id.desc())

    items, total, page, page_size = paginate(q, page, page_size)

    favorite_ids = set()
    if user_id is not None and items:
        favorite_ids = {
            pid for (pid,) in db.session.query(ProjectFavorite.project_id).filter(
                ProjectFavorite.user_id == user_id,
                ProjectFavorite.project_id.in_([p.id for p in items]),
            )
        }

    projects = []
    for p in items:
        d = p.to_dict()
        d["progress"] = stage_lifecycle.progress_percent(p.process_stages)
        d["is_favorite"] = p.id in favorite_ids
        projects.append(d)
    return {"projects": projects, "total": total, "page": page, "page_size": page_size}


def project_stats() -> dict:
    """Dashboard counters: totals, urgent, stage-status histogram, projects per current stage."""
    total = Project.query.count()
    urgent = Project.query.filter(Project.is_urgent.is_(True)).count()

    by_status = {s: 0 for s in STAGE_STATUSES}
    for status, count in db.session.query(ProcessStage.status, func.count(ProcessStage.id)).group_by(
        ProcessStage.status,
    ):
        by_status[status] = count

    by_stage = {s: 0 for s in PROCESS_STAGES}
    for stage, count in db.session.query(Project.current_process_stage, func.count(Project.id)).group_by(
        Project.current_process_stage,
    ):
        by_stage[stage] = count

    return {"total": total, "urgent": urgent, "by_status": by_status, "by_stage": by_stage}


# ── Write ────────────────────────────────────────────────────────────────────


def create_project(data: dict, stages=None, creator_id: int | None = None) -> Project:
    """Validate and create a project with its 14 stages.

    ``stages`` (optional) overrides the default plan per stage; omitted
    stages keep the defaults (contract in_progress, the rest waiting).

    Raises:
        ValidationError: missing fields, no active stage, or contract/completion
            without both planned dates.
    """
    fields = _clean_project_fields(data, partial=False)

    plan = _default_plan()
    for name, patch in _normalise_stage_input(stages).items():
        plan.setdefault(name, {}).update(patch)
    stage_lifecycle.validate_stage_plan(plan)

    now = datetime.now(timezone.utc)
    project = Project(created_by=creator_id, last_saved_at=now, **fields)
    db.session.add(project)
    db.session.flush()

    stage_lifecycle.create_default_stages(project.id, overrides=plan)
    record_project_event(project.id, "project.create", creator_id,
                         {"site_name": fields.get("site_name"), "product_name": fields.get("product_name")})
    commit_or_raise("create_project")
    logger.info("Project created: %s", project.display_name, extra={"project_id": project.id})

    stage_lifecycle.sync_after_write(project.id)
    return project


def update_project(project_id: int, data: dict, stages=None, actor_id: int | None = None) -> Project:
    """Apply field and stage changes to a project after validating the result.

    The merged stage plan (persisted rows + incoming patches) must pass the
    same rules as creation.
    """
    project = get_or_raise(Project, project_id)
    fields = _clean_project_fields(data, partial=True)
    patches = _normalise_stage_input(stages)

    plan = stage_lifecycle.stage_plan_from_rows(project.process_stages)
    for name, patch in patches.items():
        if name not in plan:
            raise ValidationError(f"Unknown stage '{name}'", details={"stage_name": name})
        plan[name].update({k: v for k, v in patch.items() if k in ("status", "start_date", "end_date")})
    stage_lifecycle.validate_stage_plan(plan)
    # every stage patch is checked before the first attribute changes
    prepared = {
        name: stage_lifecycle.prepare_stage_patch(project.stage(name), patch)
        for name, patch in patches.items()
    }

    diff = {}
    for f, new in fields.items():
        old = getattr(project, f)
        if old != new:
            diff[f] = {"old": old, "new": new}
            setattr(project, f, new)
    for name, patch in prepared.items():
        stage_diff = stage_lifecycle.apply_stage_patch(project.stage(name), patch, prepared=True)
        if stage_diff:
            diff[f"stage:{name}"] = stage_diff

    project.last_saved_at = datetime.now(timezone.utc)
    if diff:
        record_project_event(project.id, "project.update", actor_id, diff)
    commit_or_raise("update_project")
    logger.info("Project updated (%d changes)", len(diff), extra={"project_id": project.id})

    if patches:
        stage_lifecycle.sync_after_write(project.id)
    return project


def delete_project(project_id: int, actor_id: int | None = None, storage=None) -> None:
    """Delete a project with its stages, requests and logs; blobs are removed afterwards."""
    from fabtrack.services.attachment_storage import get_storage

    project = get_or_raise(Project, project_id)
    paths = [
        path for (path,) in db.session.query(HistoryLogAttachment.file_path)
        .join(HistoryLog, HistoryLog.id == HistoryLogAttachment.history_log_id)
        .filter(HistoryLog.project_id == project_id)
    ]

    db.session.delete(project)
    record_project_event(project_id, "project.delete", actor_id)
    commit_or_raise("delete_project")
    logger.info("Project deleted", extra={"project_id": project_id})

    if paths:
        storage = storage or get_storage()
        run_step("remove_attachment_blobs", lambda: storage.remove(paths),
                 context={"project_id": project_id})


def toggle_favorite(project_id: int, user_id: int) -> bool:
    """Flip the user's bookmark on a project; returns the new state."""
    get_or_raise(Project, project_id)
    if db.session.get(User, user_id) is None:
        raise NotFoundError(resource="User", resource_id=user_id)

    fav = ProjectFavorite.query.filter_by(project_id=project_id, user_id=user_id).first()
    if fav:
        db.session.delete(fav)
        state = False
    else:
        db.session.add(ProjectFavorite(project_id=project_id, user_id=user_id))
        state = True
    commit_or_raise("toggle_favorite")
    return state
