"""task notification schedule

Revision ID: 0003_task_notifications
Revises: 0002_automation_rules
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "0003_task_notifications"
down_revision = "0002_automation_rules"
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.add_column("tasks", sa.Column("notification_at", sa.DateTime(timezone=True), nullable=True))
  op.add_column("tasks", sa.Column("notification_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")))
  op.add_column("tasks", sa.Column("notification_status", sa.String(), nullable=True))  # delivered|failed|skipped
  op.add_column("tasks", sa.Column("notification_error", sa.Text(), nullable=True))
  op.create_index("ix_tasks_notification_at", "tasks", ["notification_at"])
  # Dispatcher scan: unsent notifications ordered by time.
  op.create_index(
    "ix_tasks_notification_pending",
    "tasks",
    ["notification_at"],
    postgresql_where=sa.text("notification_sent = false AND notification_at IS NOT NULL"),
  )


def downgrade() -> None:
  op.drop_index("ix_tasks_notification_pending", table_name="tasks")
  op.drop_index("ix_tasks_notification_at", table_name="tasks")
  op.drop_column("tasks", "notification_error")
  op.drop_column("tasks", "notification_status")
  op.drop_column("tasks", "notification_sent")
  op.drop_column("tasks", "notification_at")
