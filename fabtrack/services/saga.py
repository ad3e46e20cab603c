"""
Best-effort secondary steps that run after a committed primary write.

The primary write (stage row, approval request, resolution) is committed by
the caller first.  Each secondary step (log append, notification, email,
blob removal) then runs and commits on its own.  A failing step is rolled
back and logged; it never reverses the primary write and is never raised
to the caller.  The returned ``StepOutcome`` can be re-run with ``retry()``.

Usage:
    from fabtrack.services.saga import run_secondary_steps

    outcomes = run_secondary_steps(
        ("notify_approver", lambda: NotificationService.dispatch(...)),
        ("email_requester", lambda: EmailService.approval_outcome(approval, requester, category)),
        context={"approval_request_id": req.id},
    )
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from fabtrack.models import db

logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    name: str
    ok: bool
    result: Any = None
    error: str | None = None
    _fn: Callable[[], Any] | None = field(default=None, repr=False)
    _context: dict = field(default_factory=dict, repr=False)

    def retry(self) -> "StepOutcome":
        """Run the step again; returns a fresh outcome."""
        return run_step(self.name, self._fn, context=self._context)


def run_step(name: str, fn: Callable[[], Any], context: dict | None = None) -> StepOutcome:
    """Run one secondary step in its own commit scope."""
    context = dict(context or {})
    try:
        result = fn()
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        logger.warning(
            "Secondary step %s failed: %s", name, exc,
            exc_info=True, extra={**context, "saga_step": name},
        )
        return StepOutcome(name=name, ok=False, error=str(exc), _fn=fn, _context=context)
    return StepOutcome(name=name, ok=True, result=result, _fn=fn, _context=context)


def run_secondary_steps(*steps, context: dict | None = None) -> list[StepOutcome]:
    """Run ``(name, fn)`` pairs in order; one failure does not stop the rest."""
    return [run_step(name, fn, context=context) for name, fn in steps]
