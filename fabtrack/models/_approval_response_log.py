"""Write the approval_response history log when a request is resolved.

Any flush that moves an ApprovalRequest from ``pending`` to ``approved`` or
``rejected`` gets exactly one approval_response HistoryLog appended in the
same flush, linked back through ``response_log_id``.  The approval service
never writes this row itself.
"""

import logging

from sqlalchemy import event
from sqlalchemy.orm import Session, attributes

logger = logging.getLogger(__name__)

_registered = False


def _status_transition(request):
    hist = attributes.get_history(request, "status")
    if not hist.has_changes() or not hist.deleted:
        return None, None
    return hist.deleted[0], request.status


def _append_response_logs(session, flush_context, instances):
    from fabtrack.models.approval import TERMINAL_STATUSES, ApprovalRequest
    from fabtrack.models.history_log import HistoryLog

    for obj in list(session.dirty):
        if not isinstance(obj, ApprovalRequest):
            continue
        old, new = _status_transition(obj)
        if old != "pending" or new not in TERMINAL_STATUSES:
            continue
        if obj.response_log_id is not None or obj.response_log is not None:
            continue
        log = HistoryLog(
            project_id=obj.project_id,
            author_id=obj.approver_id,
            author_name=obj.approver_name,
            target_user_id=obj.requester_id,
            target_user_name=obj.requester_name,
            category="approval_response",
            content=obj.response_memo or "",
            log_type="approval_response",
            approval_status=new,
        )
        session.add(log)
        obj.response_log = log
        logger.debug(
            "approval_response log queued for request %s (%s)", obj.id, new,
            extra={"approval_request_id": obj.id, "project_id": obj.project_id},
        )


def register_all():
    """Attach the session listener once per process."""
    global _registered
    if _registered:
        return
    event.listen(Session, "before_flush", _append_response_logs)
    _registered = True
