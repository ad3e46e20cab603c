"""
Process-stage lifecycle service.

Owns the 14-step process model of a project:
  - default stage creation (contract starts in_progress)
  - single-stage updates with the mandatory-date rule
  - advancing to the next stage (complete current, start next)
  - the shared stage-plan validator used by project create and update
  - progress percentage

Every stage write is followed by a current-stage sync; that sync runs as
its own step and cannot undo the stage write.

Usage:
    from fabtrack.services.stage_lifecycle import update_stage, move_to_next_stage

    update_stage(project_id, "design", {"status": "delayed", "delay_reason": "drawings late"})
    move_to_next_stage(project_id)
"""

import logging
from datetime import date

from fabtrack.core.exceptions import NotFoundError, ValidationError
from fabtrack.models import db
from fabtrack.models.audit import record_stage_event
from fabtrack.models.project import (
    DATE_REQUIRED_STAGES,
    PROCESS_STAGES,
    STAGE_COUNT,
    STAGE_ORDER,
    STAGE_STATUSES,
    ProcessStage,
    Project,
)
from fabtrack.services.current_stage import sync_current_stage
from fabtrack.services.saga import run_step
from fabtrack.utils.helpers import commit_or_raise, parse_date

logger = logging.getLogger(__name__)

PLANNED_DATE_FIELDS = ("start_date", "end_date")
ACTUAL_DATE_FIELDS = ("actual_start_date", "actual_end_date")
DATE_FIELDS = PLANNED_DATE_FIELDS + ACTUAL_DATE_FIELDS
PATCH_FIELDS = ("status", "delay_reason") + DATE_FIELDS


# ── Validation ───────────────────────────────────────────────────────────────


def _check_stage_name(stage_name):
    if stage_name not in STAGE_ORDER:
        raise ValidationError(
            f"Unknown stage '{stage_name}'",
            details={"stage_name": f"must be one of {list(PROCESS_STAGES)}"},
        )


def _check_status(status):
    if status not in STAGE_STATUSES:
        raise ValidationError(
            f"Invalid stage status '{status}'",
            details={"status": f"must be one of {list(STAGE_STATUSES)}"},
        )


def _coerce_dates(patch):
    """Parse date fields in ``patch`` in place; bad values are a ValidationError."""
    errors = {}
    for f in DATE_FIELDS:
        if f not in patch:
            continue
        raw = patch[f]
        if raw in (None, ""):
            patch[f] = None
            continue
        parsed = parse_date(raw)
        if parsed is None:
            errors[f] = f"invalid date: {raw!r}"
        patch[f] = parsed
    if errors:
        raise ValidationError("Invalid stage dates", details=errors)
    return patch


def _missing_planned_dates(stage_name, start_date, end_date):
    missing = [f for f, v in (("start_date", start_date), ("end_date", end_date)) if v is None]
    if not missing:
        return {}
    return {stage_name: f"{' and '.join(missing)} required"}


def validate_stage_plan(stages):
    """Validate a full 14-stage plan before it is persisted.

    ``stages`` maps stage_name -> dict with ``status`` and planned dates.
    Used by both project create and project update.

    Raises:
        ValidationError: unknown stage or status, an unparseable date, no
            active stage, or contract/completion without both planned dates.
    """
    details = {}
    for name, data in stages.items():
        _check_stage_name(name)
        _check_status(data.get("status", "waiting"))
        try:
            _coerce_dates({f: data[f] for f in DATE_FIELDS if f in data})
        except ValidationError as exc:
            details.update({f"{name}.{f}": msg for f, msg in exc.details.items()})
    date_errors = bool(details)

    statuses = [stages.get(n, {}).get("status", "waiting") for n in PROCESS_STAGES]
    if not any(s in ("in_progress", "completed") for s in statuses):
        details["process_stages"] = "at least one stage must be in_progress or completed"

    for name in DATE_REQUIRED_STAGES:
        data = stages.get(name, {})
        details.update(_missing_planned_dates(
            name, parse_date(data.get("start_date")), parse_date(data.get("end_date")),
        ))

    if details:
        if "process_stages" in details:
            message = "No active stage"
        elif date_errors:
            message = "Invalid stage dates"
        else:
            message = "Contract and completion stages need start and end dates"
        raise ValidationError(message, details=details)


def stage_plan_from_rows(rows):
    """Build a validator input from persisted stage rows."""
    return {
        r.stage_name: {"status": r.status, "start_date": r.start_date, "end_date": r.end_date}
        for r in rows
    }


def progress_percent(stages) -> int:
    """Share of completed stages, rounded to a whole percent."""
    completed = sum(1 for s in stages if (s["status"] if isinstance(s, dict) else s.status) == "completed")
    return round(completed * 100 / STAGE_COUNT)


# ── Creation ─────────────────────────────────────────────────────────────────


def create_default_stages(project_id: int, overrides: dict | None = None) -> list[ProcessStage]:
    """Create the 14 stage rows for a project.

    Without ``overrides`` every stage is ``waiting`` except ``contract``,
    which starts ``in_progress``.  With ``overrides`` (stage_name -> fields)
    the caller's values are used as given and no stage is started implicitly.

    Flushes; the caller commits.
    """
    if ProcessStage.query.filter_by(project_id=project_id).count():
        raise ValidationError(f"Project {project_id} already has process stages")

    overrides = overrides or {}
    for name in overrides:
        _check_stage_name(name)

    rows = []
    for name in PROCESS_STAGES:
        if overrides:
            data = _coerce_dates({k: v for k, v in overrides.get(name, {}).items() if k in PATCH_FIELDS})
            status = data.get("status") or "waiting"
        else:
            data = {}
            status = "in_progress" if name == "contract" else "waiting"
        _check_status(status)
        rows.append(ProcessStage(
            project_id=project_id,
            stage_name=name,
            stage_order=STAGE_ORDER[name],
            status=status,
            delay_reason=data.get("delay_reason") if status == "delayed" else None,
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            actual_start_date=data.get("actual_start_date"),
            actual_end_date=data.get("actual_end_date"),
        ))
    db.session.add_all(rows)
    db.session.flush()
    return rows


# ── Mutation ─────────────────────────────────────────────────────────────────


def _get_stage(project_id, stage_name):
    _check_stage_name(stage_name)
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    stage = ProcessStage.query.filter_by(project_id=project_id, stage_name=stage_name).first()
    if stage is None:
        raise NotFoundError(resource="ProcessStage", resource_id=f"{project_id}/{stage_name}")
    return stage


def prepare_stage_patch(stage: ProcessStage, patch: dict) -> dict:
    """Validate ``patch`` against ``stage`` without touching it.

    Returns the cleaned patch (known fields only, dates parsed).  Callers
    that change several rows validate every patch this way first, so a bad
    one fails before anything in the session is modified.
    """
    patch = _coerce_dates({k: v for k, v in patch.items() if k in PATCH_FIELDS})
    if "status" in patch:
        _check_status(patch["status"])

    if stage.stage_name in DATE_REQUIRED_STAGES and any(f in patch for f in PLANNED_DATE_FIELDS):
        start = patch.get("start_date", stage.start_date)
        end = patch.get("end_date", stage.end_date)
        missing = _missing_planned_dates(stage.stage_name, start, end)
        if missing:
            raise ValidationError(
                f"{stage.stage_name} stage needs both start and end dates", details=missing,
            )
    return patch


def apply_stage_patch(stage: ProcessStage, patch: dict, *, prepared: bool = False) -> dict:
    """Apply ``patch`` to ``stage`` and return the diff.

    Unless ``prepared`` is set the patch goes through ``prepare_stage_patch``
    first.  Does not flush, audit or sync; ``update_stage`` and the project
    save path wrap it.
    """
    if not prepared:
        patch = prepare_stage_patch(stage, patch)

    diff = {}
    for f, new in patch.items():
        old = getattr(stage, f)
        if old != new:
            diff[f] = {"old": old, "new": new}
            setattr(stage, f, new)

    if stage.status != "delayed" and stage.delay_reason is not None:
        diff["delay_reason"] = {"old": stage.delay_reason, "new": None}
        stage.delay_reason = None
    return diff


def sync_after_write(project_id):
    run_step(
        "sync_current_stage",
        lambda: sync_current_stage(project_id),
        context={"project_id": project_id},
    )


def update_stage(project_id: int, stage_name: str, patch: dict, actor_id: int | None = None) -> ProcessStage:
    """Apply a patch to one stage, commit, then refresh the current stage.

    Accepted keys: status, delay_reason, start_date, end_date,
    actual_start_date, actual_end_date.

    Raises:
        ValidationError: unknown stage/status, bad date, or contract/completion
            left without both planned dates.
        NotFoundError: project or stage missing.
        PersistenceError: the stage write failed.
    """
    stage = _get_stage(project_id, stage_name)
    diff = apply_stage_patch(stage, patch)

    if diff:
        record_stage_event(stage, "stage.update", actor_id, diff)
    commit_or_raise("update_stage")
    logger.info(
        "Stage %s updated (%s)", stage_name, ", ".join(diff) or "no change",
        extra={"project_id": project_id, "stage_name": stage_name, "stage_status": stage.status},
    )

    sync_after_write(project_id)
    return stage


def update_stages(project_id: int, updates: list[dict], actor_id: int | None = None) -> list[ProcessStage]:
    """Apply several stage patches in order (each ``{"stage_name": ..., **patch}``).

    Each patch commits on its own; a failing patch raises and leaves the
    earlier ones in place.
    """
    result = []
    for item in updates:
        item = dict(item)
        name = item.pop("stage_name", None)
        result.append(update_stage(project_id, name, item, actor_id=actor_id))
    return result


def move_to_next_stage(project_id: int, actor_id: int | None = None, today: date | None = None) -> ProcessStage | None:
    """Complete the earliest in-progress stage and start the one after it.

    Returns the newly started stage, or None when no stage is in progress
    or the completed stage was the last one.  The completion is committed
    before the next stage is touched and is kept either way.
    """
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    today = today or date.today()

    current = (
        ProcessStage.query
        .filter_by(project_id=project_id, status="in_progress")
        .order_by(ProcessStage.stage_order)
        .first()
    )
    if current is None:
        logger.info("No in-progress stage to advance", extra={"project_id": project_id})
        return None

    update_stage(
        project_id, current.stage_name,
        {"status": "completed", "actual_end_date": today},
        actor_id=actor_id,
    )

    nxt = ProcessStage.query.filter_by(
        project_id=project_id, stage_order=current.stage_order + 1,
    ).first()
    if nxt is None:
        logger.info("Final stage completed", extra={"project_id": project_id, "stage_name": current.stage_name})
        return None

    stage = update_stage(
        project_id, nxt.stage_name,
        {"status": "in_progress", "actual_start_date": today},
        actor_id=actor_id,
    )
    run_step(
        "audit_stage_advance",
        lambda: record_stage_event(stage, "stage.advance", actor_id,
                                   {"from": current.stage_name, "to": stage.stage_name}),
        context={"project_id": project_id, "stage_name": stage.stage_name},
    )
    return stage
