"""
Fabtrack: manufacturing project tracker
User model.

Sign-up creates a pending user; an admin approves or rejects it.

    pending   is_approved=False, approved_at is NULL
    approved  is_approved=True
    rejected  is_approved=False, approved_at set (decision time)
"""

from datetime import datetime, timezone

from fabtrack.models import db

USER_ROLES = ("admin", "manager", "member")
USER_STATUSES = ("pending", "approved", "rejected")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    name = db.Column(db.String(150), nullable=False)
    phone = db.Column(db.String(40), nullable=True)
    department = db.Column(db.String(100), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="member")

    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def approval_status(self):
        if self.is_approved:
            return "approved"
        return "rejected" if self.approved_at is not None else "pending"

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
            "department": self.department,
            "role": self.role,
            "is_approved": self.is_approved,
            "approval_status": self.approval_status,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejection_reason": self.rejection_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email}>"
