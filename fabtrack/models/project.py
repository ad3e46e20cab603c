"""
Fabtrack: manufacturing project tracker
Project domain model.

Models:
    - Project: one manufacturing job (site, product, key dates)
    - ProcessStage: one row per (project, stage) of the fixed 14-step process
    - ProjectFavorite: per-user bookmark

PROCESS_STAGES is the only place the stage names and their order are
declared; everything else derives from it.
"""

from datetime import datetime, timezone

from fabtrack.models import db

# ── Constants ────────────────────────────────────────────────────────────────

PROCESS_STAGES = (
    "contract",
    "design",
    "order",
    "laser",
    "welding",
    "plating",
    "painting",
    "panel",
    "assembly",
    "shipping",
    "installation",
    "certification",
    "closing",
    "completion",
)

# stage_name -> stage_order (1-based)
STAGE_ORDER = {name: i for i, name in enumerate(PROCESS_STAGES, start=1)}
STAGE_COUNT = len(PROCESS_STAGES)

STAGE_STATUSES = ("waiting", "in_progress", "completed", "delayed")
ACTIVE_STATUSES = frozenset({"in_progress", "delayed"})

# Stages that must carry both planned dates before a project is saved
DATE_REQUIRED_STAGES = ("contract", "completion")


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """
    Manufacturing project.

    ``current_process_stage`` is a cached projection of the stage rows;
    only ``services.current_stage.sync_current_stage`` writes it.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    site_name = db.Column(db.String(200), nullable=False)
    product_name = db.Column(db.String(200), nullable=False)
    product_quantity = db.Column(db.Integer, nullable=False, default=1)
    outsourcing_company = db.Column(db.String(200), nullable=False)

    sales_manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    site_manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    order_date = db.Column(db.Date, nullable=False)
    expected_completion_date = db.Column(db.Date, nullable=False)
    installation_request_date = db.Column(db.Date, nullable=False)

    current_process_stage = db.Column(db.String(30), nullable=False, default="contract", index=True)
    thumbnail_url = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    is_urgent = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    last_saved_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    process_stages = db.relationship(
        "ProcessStage",
        backref="project",
        order_by="ProcessStage.stage_order",
        cascade="all, delete-orphan",
        lazy="select",
    )
    favorites = db.relationship(
        "ProjectFavorite", backref="project", cascade="all, delete-orphan", lazy="dynamic",
    )
    sales_manager = db.relationship("User", foreign_keys=[sales_manager_id])
    site_manager = db.relationship("User", foreign_keys=[site_manager_id])

    @property
    def display_name(self):
        return f"{self.site_name} - {self.product_name}"

    def stage(self, stage_name):
        for s in self.process_stages:
            if s.stage_name == stage_name:
                return s
        return None

    def to_dict(self, include_stages=False):
        d = {
            "id": self.id,
            "site_name": self.site_name,
            "product_name": self.product_name,
            "product_quantity": self.product_quantity,
            "outsourcing_company": self.outsourcing_company,
            "sales_manager_id": self.sales_manager_id,
            "site_manager_id": self.site_manager_id,
            "order_date": self.order_date.isoformat() if self.order_date else None,
            "expected_completion_date": (
                self.expected_completion_date.isoformat() if self.expected_completion_date else None
            ),
            "installation_request_date": (
                self.installation_request_date.isoformat() if self.installation_request_date else None
            ),
            "current_process_stage": self.current_process_stage,
            "thumbnail_url": self.thumbnail_url,
            "notes": self.notes,
            "is_urgent": self.is_urgent,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "last_saved_at": self.last_saved_at.isoformat() if self.last_saved_at else None,
        }
        if include_stages:
            d["process_stages"] = [s.to_dict() for s in self.process_stages]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.display_name}>"


class ProcessStage(db.Model):
    """One of the 14 fixed stages of a project."""

    __tablename__ = "process_stages"
    __table_args__ = (
        db.UniqueConstraint("project_id", "stage_name", name="uq_stage_project_name"),
        db.UniqueConstraint("project_id", "stage_order", name="uq_stage_project_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    stage_name = db.Column(db.String(30), nullable=False)
    stage_order = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="waiting")
    delay_reason = db.Column(db.Text, nullable=True)

    # Planned
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    # Actual
    actual_start_date = db.Column(db.Date, nullable=True)
    actual_end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "stage_name": self.stage_name,
            "stage_order": self.stage_order,
            "status": self.status,
            "delay_reason": self.delay_reason,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "actual_start_date": self.actual_start_date.isoformat() if self.actual_start_date else None,
            "actual_end_date": self.actual_end_date.isoformat() if self.actual_end_date else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProcessStage {self.project_id}/{self.stage_order} {self.stage_name}={self.status}>"


class ProjectFavorite(db.Model):
    __tablename__ = "project_favorites"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_favorite_project_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
