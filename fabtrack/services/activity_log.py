"""
Activity log (history log) service.

Append-only project ledger of manual notes, approval requests and approval
responses.  Rows are never edited; the only change allowed is a soft delete.
Physical deletion happens solely when an approval request is deleted
(see ``approval_workflow.delete_approval_request``).

All list operations are offset-paginated over ``created_at desc`` and
exclude soft-deleted rows.  They return ``{logs, total, page, page_size}``.
"""

from __future__ import annotations

import logging

from sqlalchemy import or_

from fabtrack.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from fabtrack.models import db
from fabtrack.models.approval import ApprovalRequest
from fabtrack.models.auth import User
from fabtrack.models.history_log import (
    LOG_CATEGORIES,
    LOG_TYPES,
    USER_CATEGORIES,
    HistoryLog,
    HistoryLogAttachment,
)
from fabtrack.models.project import Project
from fabtrack.services.attachment_storage import get_storage
from fabtrack.services.saga import StepOutcome, run_step
from fabtrack.utils.helpers import commit_or_raise, get_or_raise, paginate, parse_date

logger = logging.getLogger(__name__)

_ATTACHMENT_FIELDS = ("file_path", "file_name", "file_size", "mime_type")


# ── Helpers ──────────────────────────────────────────────────────────────────


def check_category(category: str, allowed: tuple = USER_CATEGORIES) -> None:
    if category not in allowed:
        raise ValidationError(
            f"Invalid log category '{category}'",
            details={"category": f"must be one of {list(allowed)}"},
        )


def check_attachments(attachments) -> list[dict]:
    """Validate attachment metadata before anything is written.

    Each entry must be an object with ``file_path`` and ``file_name``;
    ``file_size``, when given, is a non-negative integer.  ``None`` means
    no attachments.
    """
    if attachments is None:
        return []
    if not isinstance(attachments, list):
        raise ValidationError("Attachments must be a list", details={"attachments": "must be a list"})

    errors = {}
    for i, a in enumerate(attachments):
        key = f"attachments[{i}]"
        if not isinstance(a, dict):
            errors[key] = "must be an object"
        elif not a.get("file_path") or not a.get("file_name"):
            errors[key] = "file_path and file_name required"
        elif a.get("file_size") is not None and (
            isinstance(a["file_size"], bool) or not isinstance(a["file_size"], int) or a["file_size"] < 0
        ):
            errors[key] = "file_size must be a non-negative integer"
    if errors:
        raise ValidationError("Invalid attachments", details=errors)
    return attachments


def _attachment_rows(attachments, uploaded_by: int | None) -> list[HistoryLogAttachment]:
    return [
        HistoryLogAttachment(uploaded_by=uploaded_by, **{k: a.get(k) for k in _ATTACHMENT_FIELDS})
        for a in check_attachments(attachments)
    ]


def _page(query, page: int, page_size: int) -> dict:
    query = query.order_by(HistoryLog.created_at.desc(), HistoryLog.id.desc())
    items, total, page, page_size = paginate(query, page, page_size)
    return {
        "logs": [log.to_dict(include_project=True) for log in items],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


def append_log(
    *,
    project_id: int,
    author: User | None,
    category: str,
    content: str | None,
    log_type: str = "manual",
    target: User | None = None,
    approval_status: str | None = None,
    attachments: list[dict] | None = None,
) -> HistoryLog:
    """Add a log row (and attachment rows) to the session and flush.

    ``author``/``target`` are User rows; their names are snapshotted.
    The caller owns the commit.
    """
    if log_type not in LOG_TYPES:
        raise ValidationError(f"Invalid log type '{log_type}'")
    check_category(category, LOG_CATEGORIES)
    rows = _attachment_rows(attachments, author.id if author else None)

    log = HistoryLog(
        project_id=project_id,
        author_id=author.id if author else None,
        author_name=author.name if author else "system",
        target_user_id=target.id if target else None,
        target_user_name=target.name if target else None,
        category=category,
        content=content or "",
        log_type=log_type,
        approval_status=approval_status,
    )
    log.attachments = rows
    db.session.add(log)
    db.session.flush()
    return log


# ── Write ────────────────────────────────────────────────────────────────────


def create_manual_log(
    project_id: int,
    author_id: int,
    category: str,
    content: str,
    attachments: list[dict] | None = None,
) -> HistoryLog:
    """Record a manual note on a project."""
    get_or_raise(Project, project_id)
    author = get_or_raise(User, author_id)
    check_category(category)
    check_attachments(attachments)
    if not (content or "").strip():
        raise ValidationError("Log content is required", details={"content": "required"})

    log = append_log(
        project_id=project_id,
        author=author,
        category=category,
        content=content.strip(),
        attachments=attachments,
    )
    commit_or_raise("create_manual_log")
    logger.info("Manual log added", extra={"project_id": project_id, "history_log_id": log.id})
    return log


def add_attachments(log_id: int, attachments: list[dict], uploaded_by: int | None) -> list[HistoryLogAttachment]:
    """Register already-stored blobs on an existing log.

    With ``uploaded_by`` set, only the log's author or an admin may add.
    """
    log = get_or_raise(HistoryLog, log_id)
    if log.is_deleted:
        raise NotFoundError(resource="HistoryLog", resource_id=log_id)
    if uploaded_by is not None:
        user = get_or_raise(User, uploaded_by)
        if not (user.is_admin or log.author_id == user.id):
            raise PermissionDeniedError(uploaded_by, "add attachments to this log")
    rows = _attachment_rows(attachments, uploaded_by)
    if not rows:
        raise ValidationError("No attachments given", details={"attachments": "required"})
    log.attachments.extend(rows)
    commit_or_raise("add_attachments")
    return rows


def soft_delete_log(log_id: int, user_id: int) -> HistoryLog:
    """Hide a log entry; allowed for its author or an admin.

    An approval_request log whose request is still pending cannot be
    removed on its own; the approval request has to be deleted instead.
    """
    log = get_or_raise(HistoryLog, log_id)
    user = get_or_raise(User, user_id)
    if log.is_deleted:
        return log
    if not (user.is_admin or log.author_id == user.id):
        raise PermissionDeniedError(user_id, "delete this log")

    if log.log_type == "approval_request":
        pending = ApprovalRequest.query.filter_by(history_log_id=log.id, status="pending").first()
        if pending is not None:
            raise ValidationError(
                "Log belongs to a pending approval request",
                details={"approval_request_id": pending.id},
            )

    log.soft_delete(user_id)
    commit_or_raise("soft_delete_log")
    logger.info("Log soft-deleted", extra={"history_log_id": log.id, "user_id": user_id})
    return log


def delete_attachment(attachment_id: int, user_id: int | None = None, storage=None) -> StepOutcome:
    """Remove an attachment row, then its blob."""
    att = get_or_raise(HistoryLogAttachment, attachment_id)
    if user_id is not None:
        user = get_or_raise(User, user_id)
        if not (user.is_admin or att.uploaded_by == user.id):
            raise PermissionDeniedError(user_id, "delete this attachment")
    path, log_id = att.file_path, att.history_log_id
    db.session.delete(att)
    commit_or_raise("delete_attachment")

    storage = storage or get_storage()
    return run_step("remove_attachment_blob", lambda: storage.remove([path]),
                    context={"history_log_id": log_id})


# ── Read ─────────────────────────────────────────────────────────────────────


def list_project_logs(project_id: int, page: int = 1, page_size: int = 20) -> dict:
    get_or_raise(Project, project_id)
    q = HistoryLog.query_active().filter(HistoryLog.project_id == project_id)
    return _page(q, page, page_size)


def global_feed(page: int = 1, page_size: int = 20, user_id: int | None = None) -> dict:
    """All projects' logs; with ``user_id``, only those it wrote or received."""
    q = HistoryLog.query_active()
    if user_id is not None:
        q = q.filter(or_(HistoryLog.author_id == user_id, HistoryLog.target_user_id == user_id))
    return _page(q, page, page_size)


def user_activity(user_id: int, page: int = 1, page_size: int = 20) -> dict:
    """Logs authored by a user."""
    q = HistoryLog.query_active().filter(HistoryLog.author_id == user_id)
    return _page(q, page, page_size)


def filter_logs(filters: dict | None = None, page: int = 1, page_size: int = 20) -> dict:
    """Logs matching any combination of project_id, author_id, target_user_id,
    category, log_type, approval_status, start_date and end_date."""
    filters = filters or {}
    q = HistoryLog.query_active()
    for key in ("project_id", "author_id", "target_user_id", "category", "log_type", "approval_status"):
        if filters.get(key) not in (None, ""):
            q = q.filter(getattr(HistoryLog, key) == filters[key])
    start = parse_date(filters.get("start_date"))
    if start:
        q = q.filter(db.func.date(HistoryLog.created_at) >= start)
    end = parse_date(filters.get("end_date"))
    if end:
        # inclusive of the whole end day
        q = q.filter(db.func.date(HistoryLog.created_at) <= end)
    return _page(q, page, page_size)
