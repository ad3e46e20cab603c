"""
Fabtrack: manufacturing project tracker
Activity log domain model.

Models:
    - HistoryLog: append-only project event (manual note, approval request,
      approval response). Only the deletion fields ever change.
    - HistoryLogAttachment: file reference attached to a log entry; the blob
      lives in attachment storage, addressed by ``file_path``.
"""

from datetime import datetime, timezone

from fabtrack.models import db
from fabtrack.models.soft_delete import SoftDeleteMixin

# ── Constants ────────────────────────────────────────────────────────────────

LOG_TYPES = ("manual", "approval_request", "approval_response")

LOG_CATEGORIES = (
    "spec_change",
    "drawing_design",
    "purchase_order",
    "production",
    "loading",
    "site_installation",
    "installation_certification",
    "approval_request",
    "approval_response",
)

# Categories a user may pick for a manual note or an approval request
USER_CATEGORIES = LOG_CATEGORIES[:7]


class HistoryLog(SoftDeleteMixin, db.Model):
    __tablename__ = "history_logs"
    __table_args__ = (
        db.Index("idx_history_project_created", "project_id", "created_at"),
        db.Index("idx_history_author", "author_id"),
        db.Index("idx_history_target", "target_user_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
    )
    author_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    author_name = db.Column(db.String(150), nullable=False, default="")
    target_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    target_user_name = db.Column(db.String(150), nullable=True)

    category = db.Column(db.String(40), nullable=False)
    content = db.Column(db.Text, nullable=False, default="")
    log_type = db.Column(db.String(30), nullable=False, default="manual", index=True)
    # Set only on approval_response rows
    approval_status = db.Column(db.String(20), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    attachments = db.relationship(
        "HistoryLogAttachment",
        backref="history_log",
        cascade="all, delete-orphan",
        order_by="HistoryLogAttachment.id",
    )
    project = db.relationship("Project", backref=db.backref("history_logs", cascade="all, delete-orphan"))

    def to_dict(self, include_project=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "target_user_id": self.target_user_id,
            "target_user_name": self.target_user_name,
            "category": self.category,
            "content": self.content,
            "log_type": self.log_type,
            "approval_status": self.approval_status,
            "is_deleted": self.is_deleted,
            "deleted_by": self.deleted_by,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "attachments": [a.to_dict() for a in self.attachments],
        }
        if include_project and self.project is not None:
            d["project"] = {
                "id": self.project.id,
                "site_name": self.project.site_name,
                "product_name": self.project.product_name,
            }
        return d

    def __repr__(self):
        return f"<HistoryLog {self.id}: {self.log_type}/{self.category}>"


class HistoryLogAttachment(db.Model):
    __tablename__ = "history_log_attachments"

    id = db.Column(db.Integer, primary_key=True)
    history_log_id = db.Column(
        db.Integer, db.ForeignKey("history_logs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    file_path = db.Column(db.String(500), nullable=False)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(120), nullable=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "history_log_id": self.history_log_id,
            "file_path": self.file_path,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "uploaded_by": self.uploaded_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
