"""
Due-date automation: pure evaluation over snapshots.

Dates are handled as ISO `YYYY-MM-DD` strings and compared lexically, which keeps
"is this task due" independent of timezone conversions on the stored date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TRIGGER_DUE_DATE_REACHED = "due_date_reached"


@dataclass(frozen=True)
class TaskSnapshot:
  id: str
  column_id: str
  due_date: str | None = None
  version: int = 0


@dataclass(frozen=True)
class RuleSnapshot:
  id: str
  board_id: str
  source_column_id: str
  target_column_id: str
  trigger_type: str = TRIGGER_DUE_DATE_REACHED
  enabled: bool = True


@dataclass(frozen=True)
class PlannedMove:
  task_id: str
  source_column_id: str
  target_column_id: str
  expected_version: int | None = None
  rule_id: str | None = None
  due_date: str | None = None


def iso_date(value: object) -> str | None:
  if value is None:
    return None
  if isinstance(value, datetime):
    return value.date().isoformat()
  if isinstance(value, date):
    return value.isoformat()
  s = str(value).strip()
  if not s:
    return None
  return s.split("T", 1)[0][:10]


def _zone(tz: str | None) -> ZoneInfo:
  try:
    return ZoneInfo(tz or "UTC")
  except (ZoneInfoNotFoundError, ValueError):
    return ZoneInfo("UTC")


def today_iso(now: datetime | None = None, tz: str | None = "UTC") -> str:
  now = now or datetime.now(timezone.utc)
  if now.tzinfo is None:
    now = now.replace(tzinfo=timezone.utc)
  return now.astimezone(_zone(tz)).date().isoformat()


def is_due(due_date: str | None, today: str) -> bool:
  d = iso_date(due_date)
  return d is not None and d <= today


def is_overdue(due_date: str | None, today: str) -> bool:
  """Strictly before today; a task due today is due but not yet overdue."""
  d = iso_date(due_date)
  return d is not None and d < today


def find_due_tasks(tasks: Iterable[TaskSnapshot], today: str) -> list[TaskSnapshot]:
  return [t for t in tasks if is_due(t.due_date, today)]


def match_rule(task: TaskSnapshot, rules: Iterable[RuleSnapshot]) -> RuleSnapshot | None:
  # First match in load order wins; several rules on one source column are not merged.
  for r in rules:
    if not r.enabled or r.trigger_type != TRIGGER_DUE_DATE_REACHED:
      continue
    if r.source_column_id == task.column_id:
      return r
  return None


def plan_moves(tasks: Iterable[TaskSnapshot], rules: Iterable[RuleSnapshot], today: str) -> list[PlannedMove]:
  rules = list(rules)
  if not rules:
    return []
  out: list[PlannedMove] = []
  seen: set[str] = set()
  for t in find_due_tasks(tasks, today):
    if t.id in seen:
      continue
    r = match_rule(t, rules)
    if r is None or r.target_column_id == t.column_id:
      continue
    seen.add(t.id)
    out.append(
      PlannedMove(
        task_id=t.id,
        source_column_id=t.column_id,
        target_column_id=r.target_column_id,
        expected_version=t.version,
        rule_id=r.id,
      )
    )
  return out


def rule_redirects(rules: Iterable[RuleSnapshot], source_column_id: str, target_column_id: str) -> bool:
  return any(
    r.enabled
    and r.trigger_type == TRIGGER_DUE_DATE_REACHED
    and r.source_column_id == source_column_id
    and r.target_column_id == target_column_id
    for r in rules
  )
