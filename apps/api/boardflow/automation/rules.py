from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.automation.engine import TRIGGER_DUE_DATE_REACHED, RuleSnapshot, TaskSnapshot, iso_date
from boardflow.models import AutomationRule, BoardColumn, Task


class RuleValidationError(ValueError):
  pass


def rule_snapshot(r: AutomationRule) -> RuleSnapshot:
  return RuleSnapshot(
    id=r.id,
    board_id=r.board_id,
    source_column_id=r.source_column_id,
    target_column_id=r.target_column_id,
    trigger_type=r.trigger_type,
    enabled=bool(r.enabled),
  )


def task_snapshot(t: Task) -> TaskSnapshot:
  return TaskSnapshot(id=t.id, column_id=t.column_id, due_date=iso_date(t.due_date), version=int(t.version or 0))


async def load_enabled_rules(db: AsyncSession, board_id: str) -> list[RuleSnapshot]:
  res = await db.execute(
    select(AutomationRule)
    .where(AutomationRule.board_id == board_id, AutomationRule.enabled.is_(True))
    .order_by(AutomationRule.created_at.asc(), AutomationRule.id.asc())
  )
  return [rule_snapshot(r) for r in res.scalars().all()]


async def load_board_tasks(db: AsyncSession, board_id: str) -> list[TaskSnapshot]:
  res = await db.execute(select(Task).where(Task.board_id == board_id).order_by(Task.column_id.asc(), Task.order_index.asc()))
  return [task_snapshot(t) for t in res.scalars().all()]


async def boards_with_enabled_rules(db: AsyncSession) -> list[str]:
  res = await db.execute(select(AutomationRule.board_id).where(AutomationRule.enabled.is_(True)).distinct())
  return sorted(set(res.scalars().all()))


async def validate_rule_columns(
  db: AsyncSession,
  *,
  board_id: str,
  source_column_id: str,
  target_column_id: str,
  trigger_type: str = TRIGGER_DUE_DATE_REACHED,
) -> None:
  if trigger_type != TRIGGER_DUE_DATE_REACHED:
    raise RuleValidationError(f"Unsupported trigger type: {trigger_type}")
  if not source_column_id or not target_column_id:
    raise RuleValidationError("Please select both source and target columns")
  if source_column_id == target_column_id:
    raise RuleValidationError("Source and target columns must be different")
  res = await db.execute(
    select(BoardColumn.id).where(BoardColumn.board_id == board_id, BoardColumn.id.in_([source_column_id, target_column_id]))
  )
  found = set(res.scalars().all())
  if source_column_id not in found:
    raise RuleValidationError("Source column does not belong to this board")
  if target_column_id not in found:
    raise RuleValidationError("Target column does not belong to this board")
