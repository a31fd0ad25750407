"""Initial workflow schema

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Tables added:
- members: CMS users acting in workflows
- pages: Pages with draft/live versions
- page_editors / page_publishers: Per-page capability assignments
- workflow_requests: Page workflow requests
- workflow_request_publishers: Publishers assigned to a request
- workflow_request_changes: Append-only change log
- notification_logs: Notification history
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

OPEN_STATUS_SQL = "status IN ('AwaitingApproval', 'AwaitingEdit')"


def upgrade() -> None:
    """Create workflow tables."""

    # --- members ---
    op.create_table(
        "members",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("surname", sa.String(100), nullable=True),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_members"),
    )
    op.create_index("ix_members_email", "members", ["email"], unique=True)

    # --- pages ---
    op.create_table(
        "pages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("url_segment", sa.String(255), nullable=True),
        sa.Column("draft_version", sa.Integer(), nullable=True),
        sa.Column("live_version", sa.Integer(), nullable=True),
        sa.Column("last_edited", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_pages"),
    )
    op.create_index("ix_pages_last_edited", "pages", ["last_edited"])

    for table in ("page_editors", "page_publishers"):
        op.create_table(
            table,
            sa.Column("page_id", sa.Uuid(), nullable=False),
            sa.Column("member_id", sa.Uuid(), nullable=False),
            sa.PrimaryKeyConstraint("page_id", "member_id", name=f"pk_{table}"),
            sa.ForeignKeyConstraint(["page_id"], ["pages.id"], name=f"fk_{table}_page_id", ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["member_id"], ["members.id"], name=f"fk_{table}_member_id", ondelete="CASCADE"),
        )

    # --- workflow_requests ---
    op.create_table(
        "workflow_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("kind", sa.String(50), nullable=False, server_default="publication"),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("author_id", sa.Uuid(), nullable=True),
        sa.Column("publisher_id", sa.Uuid(), nullable=True),
        sa.Column("page_id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_requests"),
        sa.ForeignKeyConstraint(["author_id"], ["members.id"], name="fk_workflow_requests_author_id", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["publisher_id"], ["members.id"], name="fk_workflow_requests_publisher_id", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["page_id"], ["pages.id"], name="fk_workflow_requests_page_id", ondelete="CASCADE"),
    )
    op.create_index("ix_workflow_requests_kind", "workflow_requests", ["kind"])
    op.create_index("ix_workflow_requests_status", "workflow_requests", ["status"])
    op.create_index("ix_workflow_requests_author_id", "workflow_requests", ["author_id"])
    op.create_index("ix_workflow_requests_page_id", "workflow_requests", ["page_id"])
    op.create_index("ix_workflow_requests_created_at", "workflow_requests", ["created_at"])
    op.create_index(
        "uq_workflow_requests_open_page",
        "workflow_requests",
        ["page_id"],
        unique=True,
        postgresql_where=sa.text(OPEN_STATUS_SQL),
        sqlite_where=sa.text(OPEN_STATUS_SQL),
    )

    # --- workflow_request_publishers ---
    op.create_table(
        "workflow_request_publishers",
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("member_id", sa.Uuid(), nullable=False),
        sa.PrimaryKeyConstraint("request_id", "member_id", name="pk_workflow_request_publishers"),
        sa.ForeignKeyConstraint(["request_id"], ["workflow_requests.id"], name="fk_workflow_request_publishers_request_id", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"], name="fk_workflow_request_publishers_member_id", ondelete="CASCADE"),
    )

    # --- workflow_request_changes ---
    op.create_table(
        "workflow_request_changes",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("author_id", sa.Uuid(), nullable=True),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("page_draft_version", sa.Integer(), nullable=True),
        sa.Column("page_live_version", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_request_changes"),
        sa.ForeignKeyConstraint(["request_id"], ["workflow_requests.id"], name="fk_workflow_request_changes_request_id", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["author_id"], ["members.id"], name="fk_workflow_request_changes_author_id", ondelete="SET NULL"),
    )
    op.create_index("ix_workflow_request_changes_request_id", "workflow_request_changes", ["request_id"])
    op.create_index("ix_workflow_request_changes_created_at", "workflow_request_changes", ["created_at"])

    # --- notification_logs ---
    op.create_table(
        "notification_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=True),
        sa.Column("event", sa.String(50), nullable=False),
        sa.Column("recipient_id", sa.Uuid(), nullable=True),
        sa.Column("recipient", sa.String(255), nullable=True),
        sa.Column("sender", sa.String(255), nullable=True),
        sa.Column("subject", sa.String(512), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="sent"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notification_logs"),
        sa.ForeignKeyConstraint(["request_id"], ["workflow_requests.id"], name="fk_notification_logs_request_id", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["recipient_id"], ["members.id"], name="fk_notification_logs_recipient_id", ondelete="SET NULL"),
    )
    op.create_index("ix_notification_logs_request_id", "notification_logs", ["request_id"])
    op.create_index("ix_notification_logs_created_at", "notification_logs", ["created_at"])


def downgrade() -> None:
    """Drop workflow tables."""
    op.drop_table("notification_logs")
    op.drop_table("workflow_request_changes")
    op.drop_table("workflow_request_publishers")
    op.drop_index("uq_workflow_requests_open_page", table_name="workflow_requests")
    op.drop_table("workflow_requests")
    op.drop_table("page_publishers")
    op.drop_table("page_editors")
    op.drop_table("pages")
    op.drop_table("members")
