from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from boardflow.automation.engine import RuleSnapshot, TaskSnapshot, iso_date, is_overdue, rule_redirects

ACTION_CONFIRM = "confirm"
ACTION_SKIP = "skip"
ACTION_CANCEL = "cancel"


class OverrideError(ValueError):
  pass


@dataclass(frozen=True)
class PendingMove:
  task_id: str
  target_column_id: str
  target_position: int
  source_column_id: str
  current_due_date: str | None = None

  def as_dict(self) -> dict:
    return {
      "taskId": self.task_id,
      "targetColumnId": self.target_column_id,
      "targetPosition": self.target_position,
    }


@dataclass(frozen=True)
class MoveDecision:
  action: str
  task_id: str
  target_column_id: str
  target_position: int
  due_date: str | None
  due_date_changed: bool = False


def earliest_allowed_date(today: str) -> str:
  return today


def needs_due_date_resolution(task: TaskSnapshot, target_column_id: str, rules: Iterable[RuleSnapshot], today: str) -> bool:
  # The user is doing by hand what automation would do later; the stale date must be dealt with first.
  if target_column_id == task.column_id:
    return False
  if not rule_redirects(rules, task.column_id, target_column_id):
    return False
  return is_overdue(task.due_date, today)


def _parse_new_date(value: object) -> str:
  s = iso_date(value)
  if s is None:
    raise OverrideError("Please select a new due date")
  try:
    return date.fromisoformat(s).isoformat()
  except ValueError as e:
    raise OverrideError(f"Invalid due date: {value}") from e


class OverrideFlow:
  """
  Holds at most one pending manual move while the user resolves an overdue date.

  Exactly one of confirm / skip / cancel consumes the pending move. A rejected
  confirm (date before today) keeps it so another date can be picked.
  """

  def __init__(self, *, allow_skip: bool = True) -> None:
    self.allow_skip = allow_skip
    self.pending: PendingMove | None = None

  def intercept(
    self,
    task: TaskSnapshot,
    target_column_id: str,
    target_position: int,
    rules: Iterable[RuleSnapshot],
    today: str,
  ) -> PendingMove | None:
    if self.pending is not None:
      raise OverrideError("Another move is already waiting for a due date")
    if not needs_due_date_resolution(task, target_column_id, rules, today):
      return None
    self.pending = PendingMove(
      task_id=task.id,
      target_column_id=target_column_id,
      target_position=max(int(target_position), 0),
      source_column_id=task.column_id,
      current_due_date=task.due_date,
    )
    return self.pending

  def _require_pending(self) -> PendingMove:
    if self.pending is None:
      raise OverrideError("No move is waiting for a due date")
    return self.pending

  def confirm(self, new_due_date: object, today: str) -> MoveDecision:
    pending = self._require_pending()
    d = _parse_new_date(new_due_date)
    floor = earliest_allowed_date(today)
    if d < floor:
      raise OverrideError(f"Due date must be on or after {floor}")
    self.pending = None
    return MoveDecision(
      action=ACTION_CONFIRM,
      task_id=pending.task_id,
      target_column_id=pending.target_column_id,
      target_position=pending.target_position,
      due_date=d,
      due_date_changed=d != pending.current_due_date,
    )

  def skip(self) -> MoveDecision:
    pending = self._require_pending()
    if not self.allow_skip:
      raise OverrideError("Skipping the due date update is disabled")
    self.pending = None
    return MoveDecision(
      action=ACTION_SKIP,
      task_id=pending.task_id,
      target_column_id=pending.target_column_id,
      target_position=pending.target_position,
      due_date=pending.current_due_date,
    )

  def cancel(self) -> None:
    self.pending = None

  def resolve(self, action: str, *, today: str, new_due_date: object = None) -> MoveDecision | None:
    if action == ACTION_CONFIRM:
      return self.confirm(new_due_date, today)
    if action == ACTION_SKIP:
      return self.skip()
    if action == ACTION_CANCEL:
      self.cancel()
      return None
    raise OverrideError(f"Unknown override action: {action}")
