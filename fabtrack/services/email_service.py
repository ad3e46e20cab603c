"""
Fabtrack: manufacturing project tracker
Email Service.

Two flows send mail: the answer to an approval request goes back to the
requester, and an admin's decision on a sign-up goes to the new user.
Both run as secondary steps, so nothing here raises on delivery problems.

Without MAIL_SERVER the message is rendered and recorded in EmailLog but
never handed to SMTP.

Configuration (env vars):
    MAIL_SERVER          SMTP host (unset: log-only)
    MAIL_PORT            SMTP port (587)
    MAIL_USE_TLS         STARTTLS before login (true)
    MAIL_USERNAME        SMTP username
    MAIL_PASSWORD        SMTP password
    MAIL_DEFAULT_SENDER  From address
    APP_BASE_URL         Prefix for project links in approval emails
"""

from __future__ import annotations

import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any

from flask import current_app

from fabtrack.models import db
from fabtrack.models.notification import EmailLog

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30
ERROR_MESSAGE_LIMIT = 1000


# ═══════════════════════════════════════════════════════════════════════════
#  Templates
# ═══════════════════════════════════════════════════════════════════════════

_HTML_FRAME = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: #1e293b; color: white; padding: 16px 24px;">
        <h2 style="margin: 0; font-size: 18px;">Fabtrack</h2>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0;">
        {body}
    </div>
</div>
"""

# Each template has a subject, an HTML body and a plain-text body.
_TEMPLATES: dict[str, dict[str, str]] = {
    "approval_approved": {
        "subject": "[Fabtrack] {category} approved: {project_name}",
        "html": (
            "<p><strong>{approver_name}</strong> approved your <strong>{category}</strong> "
            "request on <strong>{project_name}</strong>.</p>"
            '<p><a href="{project_url}">Open project</a></p>'
        ),
        "text": "{approver_name} approved your {category} request on {project_name}.\n{project_url}",
    },
    "approval_rejected": {
        "subject": "[Fabtrack] {category} rejected: {project_name}",
        "html": (
            "<p><strong>{approver_name}</strong> rejected your <strong>{category}</strong> "
            "request on <strong>{project_name}</strong>.</p>"
            '<p style="color: #64748b;">{response_memo}</p>'
            '<p><a href="{project_url}">Open project</a></p>'
        ),
        "text": (
            "{approver_name} rejected your {category} request on {project_name}.\n"
            "{response_memo}\n{project_url}"
        ),
    },
    "user_approved": {
        "subject": "[Fabtrack] Your account has been approved",
        "html": "<p>Hello {name}, your account was approved. You can now sign in.</p>",
        "text": "Hello {name}, your account was approved. You can now sign in.",
    },
    "user_rejected": {
        "subject": "[Fabtrack] Your sign-up request was rejected",
        "html": "<p>Hello {name}, your sign-up request was rejected.</p><p>{reason}</p>",
        "text": "Hello {name}, your sign-up request was rejected.\n{reason}",
    },
}


class _KeepPlaceholders(dict):
    def __missing__(self, key):
        return f"{{{key}}}"


def _render(template: dict[str, str], context: dict[str, Any]) -> tuple[str, str, str]:
    values = _KeepPlaceholders(context)
    subject = template["subject"].format_map(values)
    html = _HTML_FRAME.replace("{body}", template["html"].format_map(values))
    text = template["text"].format_map(values)
    return subject, html, text


class EmailService:
    """Renders fabtrack emails, records them and hands them to SMTP."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    # ── Domain flows ────────────────────────────────────────────────────

    @classmethod
    def approval_outcome(cls, approval, requester, category: str) -> EmailLog | None:
        """Tell the requester how their approval request was answered."""
        project = approval.project
        base_url = current_app.config.get("APP_BASE_URL", "").rstrip("/")
        return cls.send_from_template(
            to_email=requester.email,
            to_name=requester.name,
            template_name=f"approval_{approval.status}",
            context={
                "approver_name": approval.approver_name,
                "project_name": project.display_name,
                "project_url": f"{base_url}/projects/{project.id}",
                "category": category.replace("_", " "),
                "response_memo": approval.response_memo or "",
            },
            project_id=project.id,
        )

    @classmethod
    def account_decision(cls, user) -> EmailLog | None:
        """Tell a new user whether their sign-up was approved."""
        return cls.send_from_template(
            to_email=user.email,
            to_name=user.name,
            template_name="user_approved" if user.is_approved else "user_rejected",
            context={"name": user.name, "reason": user.rejection_reason or ""},
        )

    # ── Generic sending ─────────────────────────────────────────────────

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        template_name: str,
        context: dict[str, Any],
        to_name: str | None = None,
        project_id: int | None = None,
    ) -> EmailLog | None:
        """Render ``template_name`` and send it; unknown templates return None."""
        template = _TEMPLATES.get(template_name)
        if template is None:
            logger.warning("Unknown email template %r, nothing sent to %s", template_name, to_email)
            return None
        subject, html, text = _render(template, context)
        return cls.send(
            to_email=to_email, to_name=to_name, subject=subject, html_body=html,
            text_body=text, template_name=template_name, project_id=project_id,
        )

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        subject: str,
        html_body: str,
        text_body: str | None = None,
        to_name: str | None = None,
        template_name: str | None = None,
        project_id: int | None = None,
    ) -> EmailLog:
        """Record the email and deliver it.

        The EmailLog row is flushed, not committed; the caller's step
        commits it.  Delivery errors leave the row ``failed`` with the
        error text.
        """
        record = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            project_id=project_id,
            status="queued",
        )
        db.session.add(record)
        db.session.flush()

        if not cls.is_configured():
            cls._mark_sent(record)
            logger.info("Email %s recorded without SMTP: to=%s template=%s",
                        record.id, to_email, template_name)
            return record

        message = cls._build_message(to_email, to_name, subject, html_body, text_body)
        try:
            cls._send_smtp(message)
        except (smtplib.SMTPException, OSError) as exc:
            record.status = "failed"
            record.error_message = str(exc)[:ERROR_MESSAGE_LIMIT]
            logger.error("Email %s to %s failed: %s", record.id, to_email, exc)
            return record

        cls._mark_sent(record)
        logger.info("Email %s sent to %s", record.id, to_email)
        return record

    @staticmethod
    def _mark_sent(record: EmailLog) -> None:
        record.status = "sent"
        record.sent_at = datetime.now(timezone.utc)

    @staticmethod
    def _build_message(to_email, to_name, subject, html_body, text_body) -> EmailMessage:
        cfg = current_app.config
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{cfg.get('MAIL_SERVER')}"
        message["To"] = f"{to_name} <{to_email}>" if to_name else to_email
        message.set_content(text_body or subject)
        message.add_alternative(html_body, subtype="html")
        return message

    @staticmethod
    def _send_smtp(message: EmailMessage) -> None:
        cfg = current_app.config
        with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
            smtp.send_message(message)
