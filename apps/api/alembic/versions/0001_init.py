"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "organizations",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )

  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("github_username", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)
  op.create_index("ix_users_github_username", "users", ["github_username"], unique=False)

  op.create_table(
    "members",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="member"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("organization_id", "user_id", name="ux_members_org_user"),
  )
  op.create_index("ix_members_organization_id", "members", ["organization_id"], unique=False)
  op.create_index("ix_members_user_id", "members", ["user_id"], unique=False)

  op.create_table(
    "boards",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("github_sync_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("github_access_token_encrypted", sa.Text(), nullable=True),
    sa.Column("github_token_hint", sa.String(), nullable=False, server_default=""),
    sa.Column("github_repo_name", sa.String(), nullable=True),
    sa.Column("github_project_id", sa.Integer(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_boards_organization_id", "boards", ["organization_id"], unique=False)
  op.create_index("ix_boards_github_repo_name", "boards", ["github_repo_name"], unique=False)

  op.create_table(
    "board_status_columns",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_board_status_columns_board_id", "board_status_columns", ["board_id"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("status_column_id", sa.String(36), sa.ForeignKey("board_status_columns.id"), nullable=True),
    sa.Column("status", sa.String(), nullable=False, server_default="TODO"),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("assignee_id", sa.String(36), sa.ForeignKey("members.id"), nullable=True),
    sa.Column("github_issue_number", sa.Integer(), nullable=True),
    sa.Column("github_updated_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("github_last_sync_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("board_id", "github_issue_number", name="ux_tasks_board_github_issue"),
  )
  op.create_index("ix_tasks_board_id", "tasks", ["board_id"], unique=False)

  op.create_table(
    "audit_events",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=True),
    sa.Column("task_id", sa.String(36), nullable=True),
    sa.Column("actor_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", postgresql.JSONB(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_events_board_id", "audit_events", ["board_id"], unique=False)
  op.create_index("ix_audit_events_task_id", "audit_events", ["task_id"], unique=False)

  op.create_table(
    "inbound_webhook_events",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("source", sa.String(), nullable=False),
    sa.Column("event_type", sa.String(), nullable=True),
    sa.Column("idempotency_key", sa.String(), nullable=True),
    sa.Column("headers", postgresql.JSONB(), nullable=False),
    sa.Column("body", postgresql.JSONB(), nullable=False),
    sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("processed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("result", postgresql.JSONB(), nullable=True),
    sa.Column("error", sa.Text(), nullable=True),
    sa.UniqueConstraint("source", "idempotency_key", name="ux_inbound_webhook_source_idempotency"),
  )
  op.create_index("ix_inbound_webhook_events_source", "inbound_webhook_events", ["source"], unique=False)
  op.create_index("ix_inbound_webhook_events_processed", "inbound_webhook_events", ["processed"], unique=False)


def downgrade() -> None:
  op.drop_table("inbound_webhook_events")
  op.drop_table("audit_events")
  op.drop_table("tasks")
  op.drop_table("board_status_columns")
  op.drop_table("boards")
  op.drop_table("members")
  op.drop_table("users")
  op.drop_table("organizations")
