"""Initial schema: users, workflow organizations, routes, journals, approval actions, notifications

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all workflow tables."""

    # --- users (no FK deps) ---
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("user_code", sa.String(20), nullable=False),
        sa.Column("user_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("user_id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_user_code", "users", ["user_code"], unique=True)

    # --- workflow_organizations (no FK deps) ---
    op.create_table(
        "workflow_organizations",
        sa.Column("organization_code", sa.String(20), nullable=False),
        sa.Column("organization_name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("organization_code", name="pk_workflow_organizations"),
    )

    # --- workflow_organization_users (FK -> workflow_organizations, users) ---
    op.create_table(
        "workflow_organization_users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("organization_code", sa.String(20), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_organization_users"),
        sa.ForeignKeyConstraint(
            ["organization_code"],
            ["workflow_organizations.organization_code"],
            name="fk_workflow_organization_users_organization_code",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.user_id"],
            name="fk_workflow_organization_users_user_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("organization_code", "user_id", name="uq_workflow_organization_users_org_user"),
    )
    op.create_index(
        "ix_workflow_organization_users_organization_code",
        "workflow_organization_users",
        ["organization_code"],
    )
    op.create_index("ix_workflow_organization_users_user_id", "workflow_organization_users", ["user_id"])

    # --- workflow_routes (no FK deps) ---
    op.create_table(
        "workflow_routes",
        sa.Column("route_code", sa.String(20), nullable=False),
        sa.Column("route_name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sort_order", sa.Integer(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("flow_config", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("route_code", name="pk_workflow_routes"),
    )

    # --- workflow_route_steps (FK -> workflow_routes, workflow_organizations) ---
    op.create_table(
        "workflow_route_steps",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("route_code", sa.String(20), nullable=False),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("organization_code", sa.String(20), nullable=False),
        sa.Column("step_name", sa.String(100), nullable=True),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_route_steps"),
        sa.ForeignKeyConstraint(
            ["route_code"],
            ["workflow_routes.route_code"],
            name="fk_workflow_route_steps_route_code",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["organization_code"],
            ["workflow_organizations.organization_code"],
            name="fk_workflow_route_steps_organization_code",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("route_code", "step_number", name="uq_workflow_route_steps_route_step"),
    )
    op.create_index("ix_workflow_route_steps_route_code", "workflow_route_steps", ["route_code"])
    op.create_index("ix_workflow_route_steps_organization_code", "workflow_route_steps", ["organization_code"])

    # --- journal_headers (FK -> users, workflow_routes) ---
    op.create_table(
        "journal_headers",
        sa.Column("journal_number", sa.String(20), nullable=False),
        sa.Column("journal_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("approval_status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("current_step", sa.Integer(), nullable=True),
        sa.Column("route_code", sa.String(20), nullable=True),
        sa.Column("route_version", sa.Integer(), nullable=True),
        sa.Column("route_snapshot", sa.JSON(), nullable=True),
        sa.Column("approved_by", sa.String(64), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("journal_number", name="pk_journal_headers"),
        sa.ForeignKeyConstraint(
            ["created_by"],
            ["users.user_id"],
            name="fk_journal_headers_created_by",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["route_code"],
            ["workflow_routes.route_code"],
            name="fk_journal_headers_route_code",
            ondelete="RESTRICT",
        ),
    )
    op.create_index("ix_journal_headers_approval_status", "journal_headers", ["approval_status"])
    op.create_index("ix_journal_headers_route_code", "journal_headers", ["route_code"])

    # --- approval_actions (FK -> journal_headers) ---
    op.create_table(
        "approval_actions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("journal_number", sa.String(20), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=False),
        sa.Column("decision", sa.String(20), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("acted_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_actions"),
        sa.ForeignKeyConstraint(
            ["journal_number"],
            ["journal_headers.journal_number"],
            name="fk_approval_actions_journal_number",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("journal_number", "sequence", name="uq_approval_actions_journal_sequence"),
    )
    op.create_index("ix_approval_actions_journal_number", "approval_actions", ["journal_number"])
    op.create_index("ix_approval_actions_acted_at", "approval_actions", ["acted_at"])

    # --- webhook_configs (no FK deps) ---
    op.create_table(
        "webhook_configs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("method", sa.String(10), server_default="POST"),
        sa.Column("auth_type", sa.String(50), nullable=True),
        sa.Column("auth_value", sa.Text(), nullable=True),
        sa.Column("headers", sa.JSON(), nullable=True),
        sa.Column("subscribed_events", sa.JSON(), nullable=True),
        sa.Column("payload_template", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_triggered_at", sa.DateTime(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("failure_count", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_webhook_configs"),
    )

    # --- notification_logs (FK -> webhook_configs) ---
    op.create_table(
        "notification_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("recipient", sa.String(255), nullable=False),
        sa.Column("webhook_id", sa.Uuid(), nullable=True),
        sa.Column("journal_number", sa.String(20), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notification_logs"),
        sa.ForeignKeyConstraint(
            ["webhook_id"],
            ["webhook_configs.id"],
            name="fk_notification_logs_webhook_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_notification_logs_journal_number", "notification_logs", ["journal_number"])
    op.create_index("ix_notification_logs_created_at", "notification_logs", ["created_at"])


def downgrade() -> None:
    """Drop all workflow tables in reverse dependency order."""
    op.drop_table("notification_logs")
    op.drop_table("webhook_configs")
    op.drop_table("approval_actions")
    op.drop_table("journal_headers")
    op.drop_table("workflow_route_steps")
    op.drop_table("workflow_routes")
    op.drop_table("workflow_organization_users")
    op.drop_table("workflow_organizations")
    op.drop_table("users")
