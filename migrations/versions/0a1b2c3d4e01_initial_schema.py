"""initial_schema

Create users, projects, process_stages, project_favorites, history_logs,
history_log_attachments, approval_requests, notifications, email_logs and
audit_logs.

Revision ID: 0a1b2c3d4e01
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0a1b2c3d4e01"
down_revision = None
branch_labels = None
depends_on = None


def _soft_delete_columns():
    return [
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_by", sa.Integer(), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("name", sa.String(length=150), nullable=False),
            sa.Column("phone", sa.String(length=40), nullable=True),
            sa.Column("department", sa.String(length=100), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="member"),
            sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("approved_by", sa.Integer(), nullable=True),
            sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("rejection_reason", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("site_name", sa.String(length=200), nullable=False),
            sa.Column("product_name", sa.String(length=200), nullable=False),
            sa.Column("product_quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("outsourcing_company", sa.String(length=200), nullable=False),
            sa.Column("sales_manager_id", sa.Integer(), nullable=True),
            sa.Column("site_manager_id", sa.Integer(), nullable=True),
            sa.Column("order_date", sa.Date(), nullable=False),
            sa.Column("expected_completion_date", sa.Date(), nullable=False),
            sa.Column("installation_request_date", sa.Date(), nullable=False),
            sa.Column("current_process_stage", sa.String(length=30), nullable=False, server_default="contract"),
            sa.Column("thumbnail_url", sa.String(length=500), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("is_urgent", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_saved_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["sales_manager_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["site_manager_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_current_process_stage", "projects", ["current_process_stage"])
        op.create_index("ix_projects_is_urgent", "projects", ["is_urgent"])
        op.create_index("ix_projects_created_by", "projects", ["created_by"])
        op.create_index("ix_projects_created_at", "projects", ["created_at"])

    if "process_stages" not in existing_tables:
        op.create_table(
            "process_stages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("stage_name", sa.String(length=30), nullable=False),
            sa.Column("stage_order", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="waiting"),
            sa.Column("delay_reason", sa.Text(), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("actual_start_date", sa.Date(), nullable=True),
            sa.Column("actual_end_date", sa.Date(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "stage_name", name="uq_stage_project_name"),
            sa.UniqueConstraint("project_id", "stage_order", name="uq_stage_project_order"),
        )
        op.create_index("ix_process_stages_project_id", "process_stages", ["project_id"])

    if "project_favorites" not in existing_tables:
        op.create_table(
            "project_favorites",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "user_id", name="uq_favorite_project_user"),
        )
        op.create_index("ix_project_favorites_project_id", "project_favorites", ["project_id"])
        op.create_index("ix_project_favorites_user_id", "project_favorites", ["user_id"])

    if "history_logs" not in existing_tables:
        op.create_table(
            "history_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("author_id", sa.Integer(), nullable=True),
            sa.Column("author_name", sa.String(length=150), nullable=False, server_default=""),
            sa.Column("target_user_id", sa.Integer(), nullable=True),
            sa.Column("target_user_name", sa.String(length=150), nullable=True),
            sa.Column("category", sa.String(length=40), nullable=False),
            sa.Column("content", sa.Text(), nullable=False, server_default=""),
            sa.Column("log_type", sa.String(length=30), nullable=False, server_default="manual"),
            sa.Column("approval_status", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            *_soft_delete_columns(),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["target_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["deleted_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_history_project_created", "history_logs", ["project_id", "created_at"])
        op.create_index("idx_history_author", "history_logs", ["author_id"])
        op.create_index("idx_history_target", "history_logs", ["target_user_id"])
        op.create_index("ix_history_logs_log_type", "history_logs", ["log_type"])
        op.create_index("ix_history_logs_is_deleted", "history_logs", ["is_deleted"])

    if "history_log_attachments" not in existing_tables:
        op.create_table(
            "history_log_attachments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("history_log_id", sa.Integer(), nullable=False),
            sa.Column("file_path", sa.String(length=500), nullable=False),
            sa.Column("file_name", sa.String(length=255), nullable=False),
            sa.Column("file_size", sa.Integer(), nullable=True),
            sa.Column("mime_type", sa.String(length=120), nullable=True),
            sa.Column("uploaded_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["history_log_id"], ["history_logs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index(
            "ix_history_log_attachments_history_log_id", "history_log_attachments", ["history_log_id"],
        )

    if "approval_requests" not in existing_tables:
        op.create_table(
            "approval_requests",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("requester_id", sa.Integer(), nullable=True),
            sa.Column("requester_name", sa.String(length=150), nullable=False, server_default=""),
            sa.Column("approver_id", sa.Integer(), nullable=True),
            sa.Column("approver_name", sa.String(length=150), nullable=False, server_default=""),
            sa.Column("memo", sa.Text(), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("response_memo", sa.Text(), nullable=True),
            sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("history_log_id", sa.Integer(), nullable=True),
            sa.Column("response_log_id", sa.Integer(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["requester_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["history_log_id"], ["history_logs.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["response_log_id"], ["history_logs.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_approval_requests_project_id", "approval_requests", ["project_id"])
        op.create_index("idx_approval_approver_status", "approval_requests", ["approver_id", "status"])
        op.create_index("idx_approval_requester_status", "approval_requests", ["requester_id", "status"])

    if "notifications" not in existing_tables:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("type", sa.String(length=30), nullable=False, server_default="system"),
            sa.Column("related_id", sa.Integer(), nullable=True),
            sa.Column("related_type", sa.String(length=30), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("idx_notification_user_read", "notifications", ["user_id", "is_read"])

    if "email_logs" not in existing_tables:
        op.create_table(
            "email_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_email", sa.String(length=255), nullable=False),
            sa.Column("recipient_name", sa.String(length=150), nullable=True),
            sa.Column("subject", sa.String(length=500), nullable=False),
            sa.Column("template_name", sa.String(length=100), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="queued"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_email_logs_recipient_email", "email_logs", ["recipient_email"])
        op.create_index("ix_email_logs_project_id", "email_logs", ["project_id"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("stage_name", sa.String(length=30), nullable=True),
            sa.Column("action", sa.String(length=30), nullable=False),
            sa.Column("actor_user_id", sa.Integer(), nullable=True),
            sa.Column("changes", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_project_created", "audit_logs", ["project_id", "created_at"])
        op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade():
    for table in (
        "audit_logs",
        "email_logs",
        "notifications",
        "approval_requests",
        "history_log_attachments",
        "history_logs",
        "project_favorites",
        "process_stages",
        "projects",
        "users",
    ):
        op.drop_table(table)
