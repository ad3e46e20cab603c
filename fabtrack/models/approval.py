"""
Fabtrack: manufacturing project tracker
Approval request ledger.

A requester asks one approver to approve or reject something on a project.
Lifecycle: pending → approved | rejected (terminal, never reopened).

``history_log_id`` points at the approval_request log written at creation;
``response_log_id`` at the approval_response log written when the request
is resolved. ``version`` is an optimistic-concurrency token: a resolution
that races another one fails at flush with StaleDataError.
"""

from datetime import datetime, timezone

from fabtrack.models import db

APPROVAL_STATUSES = ("pending", "approved", "rejected")
TERMINAL_STATUSES = frozenset({"approved", "rejected"})


class ApprovalRequest(db.Model):
    __tablename__ = "approval_requests"
    __table_args__ = (
        db.Index("idx_approval_approver_status", "approver_id", "status"),
        db.Index("idx_approval_requester_status", "requester_id", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    requester_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    requester_name = db.Column(db.String(150), nullable=False, default="")
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approver_name = db.Column(db.String(150), nullable=False, default="")

    memo = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default="pending")
    response_memo = db.Column(db.Text, nullable=True)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    history_log_id = db.Column(
        db.Integer, db.ForeignKey("history_logs.id", ondelete="SET NULL"), nullable=True,
    )
    response_log_id = db.Column(
        db.Integer, db.ForeignKey("history_logs.id", ondelete="SET NULL"), nullable=True,
    )

    version = db.Column(db.Integer, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    __mapper_args__ = {"version_id_col": version}

    project = db.relationship(
        "Project", backref=db.backref("approval_requests", cascade="all, delete-orphan"),
    )
    request_log = db.relationship("HistoryLog", foreign_keys=[history_log_id])
    response_log = db.relationship("HistoryLog", foreign_keys=[response_log_id])

    @property
    def is_pending(self):
        return self.status == "pending"

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "approver_id": self.approver_id,
            "approver_name": self.approver_name,
            "memo": self.memo,
            "status": self.status,
            "response_memo": self.response_memo,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "history_log_id": self.history_log_id,
            "response_log_id": self.response_log_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ApprovalRequest {self.id}: {self.status}>"
