"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True, nullable=False),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("notification_url", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "api_tokens",
    sa.Column("id", sa.String(36), primary_key=True, nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("token_hash", sa.String(), nullable=False),
    sa.Column("token_hint", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
  )
  op.create_index("ix_api_tokens_user_id", "api_tokens", ["user_id"])
  op.create_index("ix_api_tokens_token_hash", "api_tokens", ["token_hash"], unique=True)

  op.create_table(
    "boards",
    sa.Column("id", sa.String(36), primary_key=True, nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("owner_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_boards_owner_id", "boards", ["owner_id"])

  op.create_table(
    "columns",
    sa.Column("id", sa.String(36), primary_key=True, nullable=False),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_columns_board_id", "columns", ["board_id"])

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True, nullable=False),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("column_id", sa.String(36), sa.ForeignKey("columns.id"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False, server_default=""),
    sa.Column("due_date", sa.Date(), nullable=True),
    sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_tasks_board_id", "tasks", ["board_id"])
  op.create_index("ix_tasks_column_id", "tasks", ["column_id"])

  op.create_table(
    "audit_events",
    sa.Column("id", sa.String(36), primary_key=True, nullable=False),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=True),
    sa.Column("task_id", sa.String(36), sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
    sa.Column("actor_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )

  op.create_table(
    "in_app_notifications",
    sa.Column("id", sa.String(36), primary_key=True, nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    sa.Column("level", sa.String(), nullable=False, server_default="info"),  # info|ok|warn|error
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("body", sa.Text(), nullable=False),
    sa.Column("event_type", sa.String(), nullable=True),
    sa.Column("entity_type", sa.String(), nullable=True),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
  )
  op.create_index("ix_in_app_notifications_user_id", "in_app_notifications", ["user_id"])


def downgrade() -> None:
  op.drop_index("ix_in_app_notifications_user_id", table_name="in_app_notifications")
  op.drop_table("in_app_notifications")
  op.drop_table("audit_events")
  op.drop_index("ix_tasks_column_id", table_name="tasks")
  op.drop_index("ix_tasks_board_id", table_name="tasks")
  op.drop_table("tasks")
  op.drop_index("ix_columns_board_id", table_name="columns")
  op.drop_table("columns")
  op.drop_index("ix_boards_owner_id", table_name="boards")
  op.drop_table("boards")
  op.drop_index("ix_api_tokens_token_hash", table_name="api_tokens")
  op.drop_index("ix_api_tokens_user_id", table_name="api_tokens")
  op.drop_table("api_tokens")
  op.drop_index("ix_users_email", table_name="users")
  op.drop_table("users")
