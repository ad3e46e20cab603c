"""
Fabtrack: manufacturing project tracker
Notification Service.

In-app notifications for approval and sign-up events, plus the read-side
operations behind the notification bell.
"""

import logging
from datetime import datetime, timezone

from fabtrack.core.exceptions import NotFoundError, ValidationError
from fabtrack.models import db
from fabtrack.models.notification import NOTIFICATION_TYPES, Notification

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, title, message="", type="system", related_id=None, related_type=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type '{type}'")
        notif = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            related_id=related_id,
            related_type=related_type,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    @staticmethod
    def dispatch(user_id, title, message="", type="system", related_id=None, related_type=None):
        """Fire-and-forget create: failures are logged, never raised."""
        try:
            return NotificationService.create(
                user_id=user_id, title=title, message=message, type=type,
                related_id=related_id, related_type=related_type,
            )
        except Exception:
            db.session.rollback()
            logger.exception("Notification dispatch failed", extra={"user_id": user_id})
            return None

    @staticmethod
    def broadcast(*, user_ids, title, message="", type="system", related_id=None, related_type=None):
        """Send the same notification to several users in one commit."""
        notifications = []
        for uid in user_ids:
            notif = Notification(
                user_id=uid,
                title=title,
                message=message,
                type=type,
                related_id=related_id,
                related_type=related_type,
            )
            db.session.add(notif)
            notifications.append(notif)
        db.session.commit()
        return notifications

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Notifications for a user, newest first."""
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def _owned(notification_id, user_id):
        notif = db.session.get(Notification, notification_id)
        if notif is None or (user_id is not None and notif.user_id != user_id):
            raise NotFoundError(resource="Notification", resource_id=notification_id)
        return notif

    @staticmethod
    def mark_read(notification_id, user_id=None):
        """Mark a single notification as read."""
        notif = NotificationService._owned(notification_id, user_id)
        if not notif.is_read:
            notif.mark_read()
            db.session.commit()
        return notif

    @staticmethod
    def mark_many_read(notification_ids, user_id):
        """Mark the given notifications of ``user_id`` as read; returns the count."""
        if not notification_ids:
            return 0
        count = (
            Notification.query
            .filter(Notification.id.in_(notification_ids))
            .filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": datetime.now(timezone.utc)}, synchronize_session="fetch")
        )
        db.session.commit()
        return count

    @staticmethod
    def mark_all_read(user_id):
        """Mark all notifications for a user as read."""
        count = (
            Notification.query.filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": datetime.now(timezone.utc)}, synchronize_session="fetch")
        )
        db.session.commit()
        return count

    @staticmethod
    def delete(notification_id, user_id=None):
        notif = NotificationService._owned(notification_id, user_id)
        db.session.delete(notif)
        db.session.commit()

    # ── Domain events ─────────────────────────────────────────────────────

    @staticmethod
    def notify_approval_requested(approval, project):
        return NotificationService.create(
            user_id=approval.approver_id,
            title="New approval request",
            message=f"{approval.requester_name} requested approval on {project.display_name}.",
            type="approval_request",
            related_id=approval.id,
            related_type="approval_request",
        )

    @staticmethod
    def notify_approval_resolved(approval, project):
        verb = "approved" if approval.status == "approved" else "rejected"
        message = f"{approval.approver_name} {verb} your request on {project.display_name}."
        if approval.response_memo:
            message += f" Note: {approval.response_memo}"
        return NotificationService.create(
            user_id=approval.requester_id,
            title=f"Approval request {verb}",
            message=message,
            type="approval_response",
            related_id=approval.id,
            related_type="approval_request",
        )

    @staticmethod
    def notify_user_decision(user):
        if user.is_approved:
            title, message = "Account approved", "Your account has been approved. You can now sign in."
        else:
            title = "Account rejected"
            message = "Your sign-up request was rejected."
            if user.rejection_reason:
                message += f" Reason: {user.rejection_reason}"
        return NotificationService.create(
            user_id=user.id, title=title, message=message, type="system",
            related_id=user.id, related_type="user",
        )

    @staticmethod
    def notify_admins_of_signup(user, admin_ids):
        if not admin_ids:
            return []
        return NotificationService.broadcast(
            user_ids=admin_ids,
            title="New sign-up awaiting approval",
            message=f"{user.name} ({user.email}) is waiting for account approval.",
            type="system",
            related_id=user.id,
            related_type="user",
        )
