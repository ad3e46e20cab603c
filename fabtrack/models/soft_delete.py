"""
Soft delete mixin for append-only ledgers.

Adds ``is_deleted``, ``deleted_by`` and ``deleted_at``. Rows are marked
rather than removed so the audit trail survives.

Usage:
    class HistoryLog(SoftDeleteMixin, db.Model):
        ...

    log.soft_delete(user_id)
    db.session.commit()

    HistoryLog.query_active().filter_by(project_id=pid)
"""

from datetime import datetime, timezone

from sqlalchemy.orm import declared_attr

from fabtrack.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None)

    @declared_attr
    def deleted_by(cls):
        return db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def soft_delete(self, user_id=None):
        """Mark this record as deleted by ``user_id``."""
        self.is_deleted = True
        self.deleted_by = user_id
        self.deleted_at = datetime.now(timezone.utc)

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.is_deleted.is_(False))
