"""
Account sign-up approval.

New users start pending; an admin approves or rejects them.  The decision
is the primary write; the in-app notification and the email to the user
are secondary steps.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from fabtrack.core.exceptions import PermissionDeniedError, ValidationError
from fabtrack.models import db
from fabtrack.models.auth import USER_ROLES, USER_STATUSES, User
from fabtrack.services.email_service import EmailService
from fabtrack.services.notification import NotificationService
from fabtrack.services.saga import run_secondary_steps, run_step
from fabtrack.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


def _require_admin(admin_id, action):
    admin = get_or_raise(User, admin_id)
    if not admin.is_admin:
        raise PermissionDeniedError(admin_id, action)
    return admin


def _admin_ids():
    return [uid for (uid,) in db.session.query(User.id).filter(User.role == "admin", User.is_approved.is_(True))]


# ── Sign-up ──────────────────────────────────────────────────────────────────


def register_user(email, name, phone=None, department=None, role="member"):
    """Create a pending user and tell the admins."""
    email = (email or "").strip().lower()
    name = (name or "").strip()
    errors = {}
    try:
        email = validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        errors["email"] = f"Invalid email: {exc}"
    if not name:
        errors["name"] = "required"
    if role not in USER_ROLES:
        errors["role"] = f"must be one of {list(USER_ROLES)}"
    if errors:
        raise ValidationError("Invalid sign-up", details=errors)
    if User.query.filter_by(email=email).first() is not None:
        raise ValidationError("Email already registered", details={"email": "taken"})

    user = User(email=email, name=name, phone=phone, department=department, role=role)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ValidationError("Email already registered", details={"email": "taken"}) from exc
    logger.info("User %s signed up (pending)", user.id, extra={"user_id": user.id})

    notify_admins_of_new_signup(user)
    return user


def notify_admins_of_new_signup(user):
    """Best-effort notification of every approved admin."""
    return run_step(
        "notify_admins_of_signup",
        lambda: NotificationService.notify_admins_of_signup(user, _admin_ids()),
        context={"user_id": user.id},
    )


# ── Decisions ────────────────────────────────────────────────────────────────


def _announce_decision(user):
    run_secondary_steps(
        ("notify_user", lambda: NotificationService.notify_user_decision(user)),
        ("email_user", lambda: EmailService.account_decision(user)),
        context={"user_id": user.id},
    )


def approve_user(user_id, admin_id):
    admin = _require_admin(admin_id, "approve users")
    user = get_or_raise(User, user_id)
    if user.is_approved:
        raise ValidationError("User is already approved", details={"status": "approved"})

    user.is_approved = True
    user.approved_by = admin.id
    user.approved_at = datetime.now(timezone.utc)
    user.rejection_reason = None
    commit_or_raise("approve_user")
    logger.info("User %s approved by %s", user.id, admin.id, extra={"user_id": user.id})

    _announce_decision(user)
    return user


def reject_user(user_id, admin_id, reason=None):
    admin = _require_admin(admin_id, "reject users")
    user = get_or_raise(User, user_id)
    if user.id == admin.id:
        raise ValidationError("Admins cannot reject themselves")

    user.is_approved = False
    user.approved_by = admin.id
    user.approved_at = datetime.now(timezone.utc)
    user.rejection_reason = (reason or "").strip() or None
    commit_or_raise("reject_user")
    logger.info("User %s rejected by %s", user.id, admin.id, extra={"user_id": user.id})

    _announce_decision(user)
    return user


def delete_user(user_id, admin_id):
    admin = _require_admin(admin_id, "delete users")
    user = get_or_raise(User, user_id)
    if user.id == admin.id:
        raise ValidationError("Admins cannot delete themselves")
    db.session.delete(user)
    commit_or_raise("delete_user")
    logger.info("User %s deleted by %s", user_id, admin.id, extra={"user_id": user_id})


# ── Read ─────────────────────────────────────────────────────────────────────


def get_users_by_status(status):
    if status not in USER_STATUSES:
        raise ValidationError(f"Invalid user status '{status}'",
                              details={"status": f"must be one of {list(USER_STATUSES)}"})
    q = User.query
    if status == "approved":
        q = q.filter(User.is_approved.is_(True))
    elif status == "pending":
        q = q.filter(User.is_approved.is_(False), User.approved_at.is_(None))
    else:
        q = q.filter(User.is_approved.is_(False), User.approved_at.isnot(None))
    return q.order_by(User.created_at.desc(), User.id.desc()).all()


def check_user_approval_status(user_id):
    """Return ``{"status", "is_approved", "rejection_reason"}`` for a user."""
    user = get_or_raise(User, user_id)
    return {
        "user_id": user.id,
        "status": user.approval_status,
        "is_approved": user.is_approved,
        "rejection_reason": user.rejection_reason,
    }
