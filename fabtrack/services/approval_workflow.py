"""
Approval workflow service.

A requester asks one approver to approve or reject something on a project.

State machine (per request):
    pending ──approve──▶ approved
    pending ──reject───▶ rejected
Terminal states are final.

Writes:
  - create:  request row (primary), then the approval_request history log and
             the approver notification as independent secondary steps.
  - respond: status/response_memo/responded_at (primary).  The approval_response
             history log is appended by the session listener in
             ``models/_approval_response_log.py`` within the same flush; this
             module never writes it.  Requester notification and email follow
             as secondary steps.
  - delete:  admin only.  Hard-deletes the request and its request log with
             attachments; soft-deletes the response log; removes blobs last.

Secondary-step failures are logged and never reverse the primary write.

Usage:
    from fabtrack.services.approval_workflow import (
        create_approval_request, respond_to_approval_request,
    )

    req = create_approval_request(project_id, requester_id, approver_id,
                                  memo="Please check drawing rev B",
                                  category="drawing_design")
    respond_to_approval_request(req.id, approver_id, "approved", "OK")
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from fabtrack.core.exceptions import (
    AlreadyResolvedError,
    PermissionDeniedError,
    PersistenceError,
    ValidationError,
)
from fabtrack.models import db
from fabtrack.models.approval import APPROVAL_STATUSES, TERMINAL_STATUSES, ApprovalRequest
from fabtrack.models.auth import User
from fabtrack.models.history_log import HistoryLog
from fabtrack.models.notification import EmailLog
from fabtrack.models.project import Project
from fabtrack.services import activity_log
from fabtrack.services.attachment_storage import get_storage
from fabtrack.services.email_service import EmailService
from fabtrack.services.notification import NotificationService
from fabtrack.services.saga import StepOutcome, run_secondary_steps, run_step
from fabtrack.utils.helpers import commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)


# ── Log linkage ──────────────────────────────────────────────────────────────


def find_request_log(approval: ApprovalRequest) -> HistoryLog | None:
    """Return the approval_request log of ``approval``.

    Uses ``history_log_id``; rows created before that link existed are
    paired by (project, requester, approver) within the configured window
    around the request's creation time.
    """
    if approval.history_log_id is not None:
        return approval.request_log
    if approval.created_at is None:
        return None

    window = timedelta(seconds=current_app.config.get("APPROVAL_LOG_MATCH_WINDOW_SECONDS", 2))
    return (
        HistoryLog.query
        .filter(
            HistoryLog.project_id == approval.project_id,
            HistoryLog.log_type == "approval_request",
            HistoryLog.author_id == approval.requester_id,
            HistoryLog.target_user_id == approval.approver_id,
            HistoryLog.created_at >= approval.created_at - window,
            HistoryLog.created_at <= approval.created_at + window,
        )
        .order_by(HistoryLog.created_at.desc())
        .first()
    )


def find_response_log(approval: ApprovalRequest) -> HistoryLog | None:
    """Return the approval_response log of a resolved request, if any."""
    if approval.response_log_id is not None:
        return approval.response_log
    return (
        HistoryLog.query
        .filter(
            HistoryLog.project_id == approval.project_id,
            HistoryLog.log_type == "approval_response",
            HistoryLog.author_id == approval.approver_id,
            HistoryLog.target_user_id == approval.requester_id,
            HistoryLog.is_deleted.is_(False),
        )
        .order_by(HistoryLog.created_at.desc())
        .first()
    )


def _request_category(approval: ApprovalRequest, default: str) -> str:
    log = find_request_log(approval)
    return log.category if log is not None else default


# ── Create ───────────────────────────────────────────────────────────────────


def _attach_request_log(approval_id: int, category: str, attachments: list[dict]) -> HistoryLog:
    approval = db.session.get(ApprovalRequest, approval_id)
    log = activity_log.append_log(
        project_id=approval.project_id,
        author=db.session.get(User, approval.requester_id),
        target=db.session.get(User, approval.approver_id),
        category=category,
        content=approval.memo,
        log_type="approval_request",
        attachments=attachments,
    )
    approval.history_log_id = log.id
    return log


def create_approval_request(
    project_id: int,
    requester_id: int,
    approver_id: int,
    memo: str,
    category: str = "approval_request",
    attachments: list[dict] | None = None,
) -> ApprovalRequest:
    """Open a pending approval request.

    Raises:
        NotFoundError: project, requester or approver missing.
        ValidationError: self-approval, empty memo, bad category or
            malformed attachment metadata.
        PersistenceError: the request row could not be stored.
    """
    project = get_or_raise(Project, project_id)
    requester = get_or_raise(User, requester_id)
    approver = get_or_raise(User, approver_id)
    if requester.id == approver.id:
        raise ValidationError("Requester and approver must differ", details={"approver_id": "same as requester"})
    if not (memo or "").strip():
        raise ValidationError("Approval memo is required", details={"memo": "required"})
    activity_log.check_category(category, activity_log.USER_CATEGORIES + ("approval_request",))
    attachments = activity_log.check_attachments(attachments)

    approval = ApprovalRequest(
        project_id=project.id,
        requester_id=requester.id,
        requester_name=requester.name,
        approver_id=approver.id,
        approver_name=approver.name,
        memo=memo.strip(),
        status="pending",
    )
    db.session.add(approval)
    commit_or_raise("create_approval_request")
    logger.info(
        "Approval request %s opened", approval.id,
        extra={"project_id": project.id, "approval_request_id": approval.id, "user_id": requester.id},
    )

    approval_id = approval.id
    run_secondary_steps(
        ("append_request_log", lambda: _attach_request_log(approval_id, category, attachments)),
        ("notify_approver", lambda: NotificationService.notify_approval_requested(
            db.session.get(ApprovalRequest, approval_id), project)),
        context={"project_id": project.id, "approval_request_id": approval_id},
    )
    return approval


# ── Respond ──────────────────────────────────────────────────────────────────


def _email_requester(approval_id: int) -> EmailLog | None:
    approval = db.session.get(ApprovalRequest, approval_id)
    requester = db.session.get(User, approval.requester_id) if approval.requester_id else None
    if requester is None or not requester.email:
        return None
    return EmailService.approval_outcome(approval, requester, _request_category(approval, "approval_request"))


def respond_to_approval_request(
    request_id: int,
    approver_id: int,
    status: str,
    response_memo: str | None = None,
) -> bool:
    """Resolve a pending request as approved or rejected.

    The row is re-read right before the write and the write itself is
    guarded by the row version, so of two concurrent responses only one
    succeeds.

    Raises:
        NotFoundError: request missing.
        ValidationError: status not approved/rejected.
        PermissionDeniedError: caller is not the designated approver.
        AlreadyResolvedError: request no longer pending.
        PersistenceError: the resolution could not be stored.
    """
    if status not in TERMINAL_STATUSES:
        raise ValidationError(
            f"Invalid approval status '{status}'",
            details={"status": f"must be one of {sorted(TERMINAL_STATUSES)}"},
        )
    approval = get_or_raise(ApprovalRequest, request_id)
    if approval.approver_id != approver_id:
        raise PermissionDeniedError(approver_id, "respond to this approval request")

    db.session.refresh(approval)
    if not approval.is_pending:
        raise AlreadyResolvedError(request_id, approval.status)

    approval.status = status
    approval.response_memo = (response_memo or "").strip() or None
    approval.responded_at = datetime.now(timezone.utc)
    try:
        db.session.commit()
    except StaleDataError:
        db.session.rollback()
        current = db.session.get(ApprovalRequest, request_id)
        raise AlreadyResolvedError(request_id, current.status if current else None)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Store write failed: respond_to_approval_request")
        raise PersistenceError("respond_to_approval_request", exc) from exc

    project = approval.project
    logger.info(
        "Approval request %s %s", request_id, status,
        extra={"project_id": project.id, "approval_request_id": request_id, "user_id": approver_id},
    )

    run_secondary_steps(
        ("notify_requester", lambda: NotificationService.notify_approval_resolved(
            db.session.get(ApprovalRequest, request_id), project)),
        ("email_requester", lambda: _email_requester(request_id)),
        context={"project_id": project.id, "approval_request_id": request_id},
    )
    return True


# ── Delete ───────────────────────────────────────────────────────────────────


def delete_approval_request(request_id: int, admin_id: int, storage=None) -> StepOutcome | None:
    """Remove a request on behalf of an admin.

    The request and its approval_request log (with attachment rows) are
    deleted; a resolved request's approval_response log is soft-deleted so
    the decision stays in the audit trail.  Attachment blobs are removed
    after the commit.
    """
    admin = get_or_raise(User, admin_id)
    if not admin.is_admin:
        raise PermissionDeniedError(admin_id, "delete approval requests")
    approval = get_or_raise(ApprovalRequest, request_id)

    request_log = find_request_log(approval)
    response_log = None if approval.is_pending else find_response_log(approval)
    paths = [a.file_path for a in request_log.attachments] if request_log is not None else []
    project_id = approval.project_id
    request_log_id = request_log.id if request_log is not None else None
    response_log_id = response_log.id if response_log is not None else None

    db.session.delete(approval)
    if request_log is not None:
        db.session.delete(request_log)
    if response_log is not None and not response_log.is_deleted:
        response_log.soft_delete(admin_id)
    commit_or_raise("delete_approval_request")
    logger.info(
        "Approval request %s deleted (request log %s, response log %s)",
        request_id, request_log_id, response_log_id,
        extra={"project_id": project_id, "approval_request_id": request_id, "user_id": admin_id},
    )

    if not paths:
        return None
    storage = storage or get_storage()
    return run_step("remove_attachment_blobs", lambda: storage.remove(paths),
                    context={"project_id": project_id, "approval_request_id": request_id})


# ── Read ─────────────────────────────────────────────────────────────────────


def approval_summary(approval: ApprovalRequest) -> dict:
    """Request dict enriched with project label, request-log category and attachments."""
    d = approval.to_dict()
    project = approval.project
    d["project"] = {
        "id": project.id,
        "site_name": project.site_name,
        "product_name": project.product_name,
        "name": project.display_name,
    }
    log = find_request_log(approval)
    d["category"] = log.category if log is not None else None
    d["attachments"] = [a.to_dict() for a in log.attachments] if log is not None else []
    return d


def list_approval_requests(project_id: int, status: str | None = None) -> list[dict]:
    """Requests on a project, newest first, optionally filtered by status."""
    if status and status not in APPROVAL_STATUSES:
        raise ValidationError(
            f"Invalid approval status '{status}'",
            details={"status": f"must be one of {list(APPROVAL_STATUSES)}"},
        )
    get_or_raise(Project, project_id)
    q = ApprovalRequest.query.filter_by(project_id=project_id)
    if status:
        q = q.filter_by(status=status)
    rows = q.order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc()).all()
    return [approval_summary(a) for a in rows]


def get_pending_approvals_for_user(user_id: int) -> dict:
    """Pending requests the user must answer and those it is waiting on.

    Admins also get the list of sign-ups awaiting approval.
    """
    from fabtrack.services.user_approval import get_users_by_status

    user = get_or_raise(User, user_id)
    base = ApprovalRequest.query.filter_by(status="pending").order_by(
        ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc(),
    )
    result = {
        "received": [approval_summary(a) for a in base.filter(ApprovalRequest.approver_id == user.id)],
        "sent": [approval_summary(a) for a in base.filter(ApprovalRequest.requester_id == user.id)],
        "pending_users": [],
    }
    if user.is_admin:
        result["pending_users"] = [u.to_dict() for u in get_users_by_status("pending")]
    return result
