from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.audit import write_audit
from boardflow.automation.engine import PlannedMove
from boardflow.models import Task, utcnow
from boardflow.notifications.events import notify_board_owner

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
  board_id: str | None = None
  moved: list[str] = field(default_factory=list)
  conflicts: list[str] = field(default_factory=list)
  failed: list[str] = field(default_factory=list)
  error: str | None = None

  @property
  def ok(self) -> bool:
    return not self.failed

  def as_dict(self) -> dict[str, Any]:
    return {
      "boardId": self.board_id,
      "moved": list(self.moved),
      "conflicts": list(self.conflicts),
      "failed": list(self.failed),
      "error": self.error,
    }


TasksUpdatedCallback = Callable[[BatchResult], Awaitable[None] | None]


async def _next_order_indexes(db: AsyncSession, column_ids: set[str]) -> dict[str, int]:
  res = await db.execute(
    select(Task.column_id, func.max(Task.order_index)).where(Task.column_id.in_(sorted(column_ids))).group_by(Task.column_id)
  )
  out = {cid: 0 for cid in column_ids}
  for cid, max_idx in res.all():
    out[cid] = (max_idx + 1) if max_idx is not None else 0
  return out


async def _apply_in_transaction(db: AsyncSession, moves: Sequence[PlannedMove], *, board_id: str, actor_id: str | None, result: BatchResult) -> None:
  next_idx = await _next_order_indexes(db, {m.target_column_id for m in moves})
  now = utcnow()
  for m in moves:
    conds = [Task.id == m.task_id, Task.board_id == board_id, Task.column_id == m.source_column_id]
    if m.expected_version is not None:
      conds.append(Task.version == m.expected_version)
    values: dict[str, Any] = {
      "column_id": m.target_column_id,
      "order_index": next_idx[m.target_column_id],
      "version": Task.version + 1,
      "updated_at": now,
    }
    if m.due_date is not None:
      values["due_date"] = date.fromisoformat(m.due_date)
    res = await db.execute(update(Task).where(*conds).values(**values).execution_options(synchronize_session=False))
    if res.rowcount == 0:
      # Moved or edited since the scan; fresh state is evaluated next cycle.
      result.conflicts.append(m.task_id)
      continue
    next_idx[m.target_column_id] += 1
    result.moved.append(m.task_id)
    await write_audit(
      db,
      event_type="task.moved",
      entity_type="Task",
      entity_id=m.task_id,
      board_id=board_id,
      task_id=m.task_id,
      actor_id=actor_id,
      payload={
        "source": "automation" if actor_id is None else "manual",
        "fromColumnId": m.source_column_id,
        "toColumnId": m.target_column_id,
        "ruleId": m.rule_id,
        "dueDate": m.due_date,
      },
    )

  if result.moved:
    await notify_board_owner(
      db,
      board_id=board_id,
      level="ok",
      title="Tasks Moved",
      body=f"{len(result.moved)} overdue task(s) moved automatically",
      event_type="automation.moved",
    )


async def _report_failure(db: AsyncSession, *, board_id: str, result: BatchResult) -> None:
  try:
    await notify_board_owner(
      db,
      board_id=board_id,
      level="error",
      title="Automation failed",
      body=f"{len(result.failed)} overdue task(s) could not be moved: {result.error}",
      event_type="automation.failed",
    )
    await db.commit()
  except SQLAlchemyError:
    await db.rollback()
    logger.exception("automation: could not record failure notification for board %s", board_id)


async def apply_moves(
  db: AsyncSession,
  moves: Sequence[PlannedMove],
  *,
  board_id: str,
  actor_id: str | None = None,
  on_tasks_updated: TasksUpdatedCallback | None = None,
) -> BatchResult:
  """
  Apply planned column moves as one transaction.

  - Each row update is guarded by the task's source column and version, so a task
    dragged by hand since the scan is reported as a conflict instead of overwritten.
  - A database error rolls back every move in the batch and is reported, never raised.
  - `on_tasks_updated` fires only when at least one task moved and nothing failed.
  """
  result = BatchResult(board_id=board_id)
  if not moves:
    return result

  try:
    await _apply_in_transaction(db, moves, board_id=board_id, actor_id=actor_id, result=result)
    await db.commit()
  except SQLAlchemyError as e:
    await db.rollback()
    logger.exception("automation: batch of %d move(s) on board %s rolled back", len(moves), board_id)
    result.moved = []
    result.conflicts = []
    result.failed = [m.task_id for m in moves]
    result.error = str(e)
    await _report_failure(db, board_id=board_id, result=result)
    return result

  if result.conflicts:
    logger.info("automation: %d task(s) changed since scan on board %s: %s", len(result.conflicts), board_id, result.conflicts)
  if result.moved:
    logger.info("automation: moved %d task(s) on board %s", len(result.moved), board_id)
    if on_tasks_updated is not None:
      out = on_tasks_updated(result)
      if inspect.isawaitable(out):
        await out
  return result
