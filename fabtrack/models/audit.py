"""
Fabtrack: manufacturing project tracker
Audit domain model.

Models:
    - AuditLog: append-only trail of project and stage lifecycle events.

The activity log (HistoryLog) is what users read and write; this table is
the machine record of who changed which project or stage and how.
"""

import json
from datetime import datetime, timezone

from fabtrack.models import db

PROJECT_ACTIONS = ("project.create", "project.update", "project.delete")
STAGE_ACTIONS = ("stage.update", "stage.advance")


class AuditLog(db.Model):
    """
    One row per lifecycle event.

    ``stage_name`` is set for stage events only.  ``changes`` maps a field
    to ``{"old", "new"}`` for updates and carries free-form context otherwise.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_project_created", "project_id", "created_at"),
        db.Index("ix_audit_logs_action", "action"),
    )

    id = db.Column(db.Integer, primary_key=True)
    # No FK: rows outlive a deleted project
    project_id = db.Column(db.Integer, nullable=False)
    stage_name = db.Column(db.String(30), nullable=True)
    action = db.Column(db.String(30), nullable=False)
    actor_user_id = db.Column(db.Integer, nullable=True)
    changes = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "stage_name": self.stage_name,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "changes": self.changes or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        target = f"{self.project_id}/{self.stage_name}" if self.stage_name else str(self.project_id)
        return f"<AuditLog {self.id}: {self.action} {target}>"


def _append(row):
    # dates and decimals stored as strings
    row.changes = json.loads(json.dumps(row.changes, default=str))
    # flush only: the caller's commit decides whether the event sticks
    db.session.add(row)
    db.session.flush()
    return row


def record_project_event(project_id, action, actor_id=None, changes=None):
    if action not in PROJECT_ACTIONS:
        raise ValueError(f"Unknown project audit action: {action}")
    return _append(AuditLog(
        project_id=project_id, action=action, actor_user_id=actor_id, changes=changes or {},
    ))


def record_stage_event(stage, action, actor_id=None, changes=None):
    if action not in STAGE_ACTIONS:
        raise ValueError(f"Unknown stage audit action: {action}")
    return _append(AuditLog(
        project_id=stage.project_id, stage_name=stage.stage_name,
        action=action, actor_user_id=actor_id, changes=changes or {},
    ))
