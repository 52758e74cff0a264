"""automation rules

Revision ID: 0002_automation_rules
Revises: 0001_init
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "0002_automation_rules"
down_revision = "0001_init"
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "automation_rules",
    sa.Column("id", sa.String(36), primary_key=True, nullable=False),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id"), nullable=False),
    sa.Column("source_column_id", sa.String(36), sa.ForeignKey("columns.id"), nullable=False),
    sa.Column("target_column_id", sa.String(36), sa.ForeignKey("columns.id"), nullable=False),
    sa.Column("trigger_type", sa.String(), nullable=False, server_default="due_date_reached"),
    sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.CheckConstraint("source_column_id <> target_column_id", name="ck_automation_rules_distinct_columns"),
  )
  op.create_index("ix_automation_rules_board_id", "automation_rules", ["board_id"])
  op.create_index("ix_automation_rules_enabled", "automation_rules", ["enabled"])


def downgrade() -> None:
  op.drop_index("ix_automation_rules_enabled", table_name="automation_rules")
  op.drop_index("ix_automation_rules_board_id", table_name="automation_rules")
  op.drop_table("automation_rules")
