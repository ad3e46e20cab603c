"""
Current-stage resolution.

A project's current stage is the active stage (``in_progress`` or
``delayed``) with the smallest ``stage_order``.  When no stage is active
the pointer is left as it was.

``resolve_current_stage`` is pure; ``sync_current_stage`` is the one place
that writes ``Project.current_process_stage``.  Re-running it over the same
rows always gives the same answer, so concurrent stage writes converge on
whichever one lands last.
"""

import logging

from fabtrack.models import db
from fabtrack.models.project import ACTIVE_STATUSES, ProcessStage, Project

logger = logging.getLogger(__name__)


def resolve_current_stage(stages):
    """Return the name of the lowest-ordered active stage, or None.

    Args:
        stages: iterable of objects with ``stage_name``, ``stage_order``
            and ``status`` (ORM rows or plain dicts).
    """
    best = None
    for s in stages:
        status = s["status"] if isinstance(s, dict) else s.status
        if status not in ACTIVE_STATUSES:
            continue
        order = s["stage_order"] if isinstance(s, dict) else s.stage_order
        if best is None or order < best[0]:
            name = s["stage_name"] if isinstance(s, dict) else s.stage_name
            best = (order, name)
    return best[1] if best else None


def sync_current_stage(project_id: int) -> str | None:
    """Re-read the stage rows and refresh the cached pointer.

    Flushes but does not commit; the caller owns the transaction.
    Returns the resolved stage name, or None when nothing is active.
    """
    stages = (
        ProcessStage.query
        .filter_by(project_id=project_id)
        .order_by(ProcessStage.stage_order)
        .all()
    )
    resolved = resolve_current_stage(stages)
    if resolved is None:
        return None

    project = db.session.get(Project, project_id)
    if project is not None and project.current_process_stage != resolved:
        logger.info(
            "Current stage %s -> %s", project.current_process_stage, resolved,
            extra={"project_id": project_id, "stage_name": resolved},
        )
        project.current_process_stage = resolved
        db.session.flush()
    return resolved
