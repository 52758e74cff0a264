from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.audit import write_audit
from boardflow.automation.engine import today_iso
from boardflow.automation.override import OverrideFlow, earliest_allowed_date
from boardflow.automation.rules import load_enabled_rules, task_snapshot
from boardflow.config import settings
from boardflow.deps import get_current_user, get_db, require_board_owner
from boardflow.models import BoardColumn, Task, User, new_id, utcnow
from boardflow.schemas import TaskCreateIn, TaskMoveIn, TaskOut, TaskUpdateIn

router = APIRouter(tags=["tasks"])


def _task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    boardId=t.board_id,
    columnId=t.column_id,
    title=t.title,
    description=t.description,
    dueDate=t.due_date,
    notificationAt=t.notification_at,
    notificationSent=bool(t.notification_sent),
    notificationStatus=t.notification_status,
    orderIndex=t.order_index,
    version=t.version,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


async def _board_column(board_id: str, column_id: str, db: AsyncSession) -> BoardColumn:
  res = await db.execute(select(BoardColumn).where(BoardColumn.id == column_id))
  c = res.scalar_one_or_none()
  if not c or c.board_id != board_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid columnId")
  return c


async def _load_task(task_id: str, user: User, db: AsyncSession) -> Task:
  res = await db.execute(select(Task).where(Task.id == task_id))
  t = res.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  await require_board_owner(t.board_id, user, db)
  return t


@router.get("/boards/{board_id}/tasks", response_model=list[TaskOut])
async def list_tasks(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  await require_board_owner(board_id, user, db)
  res = await db.execute(select(Task).where(Task.board_id == board_id).order_by(Task.column_id.asc(), Task.order_index.asc()))
  return [_task_out(t) for t in res.scalars().all()]


@router.post("/boards/{board_id}/tasks", response_model=TaskOut)
async def create_task(board_id: str, payload: TaskCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  await require_board_owner(board_id, user, db)
  column = await _board_column(board_id, payload.columnId, db)

  res = await db.execute(select(func.max(Task.order_index)).where(Task.board_id == board_id, Task.column_id == column.id))
  max_order = res.scalar_one()
  t = Task(
    id=new_id(),
    board_id=board_id,
    column_id=column.id,
    title=payload.title.strip(),
    description=payload.description or "",
    due_date=payload.dueDate,
    notification_at=payload.notificationAt,
    notification_sent=False,
    order_index=(max_order + 1) if max_order is not None else 0,
    version=0,
  )
  db.add(t)
  await write_audit(
    db,
    event_type="task.created",
    entity_type="Task",
    entity_id=t.id,
    board_id=board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"title": t.title, "columnId": column.id, "dueDate": payload.dueDate},
  )
  await db.commit()
  await db.refresh(t)
  return _task_out(t)


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await _load_task(task_id, user, db)
  return _task_out(t)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(task_id: str, payload: TaskUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await _load_task(task_id, user, db)
  if t.version != payload.version:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Version conflict")

  fields_set = payload.model_fields_set
  changed: dict = {}
  mapping = [
    ("title", "title"),
    ("description", "description"),
    ("due_date", "dueDate"),
    ("notification_at", "notificationAt"),
  ]
  for model_attr, field_name in mapping:
    if field_name not in fields_set:
      continue
    val = getattr(payload, field_name)
    if model_attr == "title" and val is None:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title cannot be empty")
    setattr(t, model_attr, val)
    changed[field_name] = val[:500] if field_name == "description" and isinstance(val, str) else val

  if "notificationAt" in fields_set:
    # A rescheduled notification fires again.
    t.notification_sent = False
    t.notification_status = None
    t.notification_error = None

  t.version += 1
  await write_audit(
    db,
    event_type="task.updated",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={"version": t.version, "changed": list(changed.keys()), "fields": changed},
  )
  await db.commit()
  await db.refresh(t)
  return _task_out(t)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  t = await _load_task(task_id, user, db)
  await db.execute(delete(Task).where(Task.id == task_id))
  await write_audit(
    db,
    event_type="task.deleted",
    entity_type="Task",
    entity_id=task_id,
    board_id=t.board_id,
    actor_id=user.id,
    payload={"title": t.title},
  )
  await db.commit()
  return {"ok": True}


@router.post("/tasks/{task_id}/move", response_model=TaskOut)
async def move_task(task_id: str, payload: TaskMoveIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TaskOut:
  t = await _load_task(task_id, user, db)
  if t.version != payload.version:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Version conflict")
  column = await _board_column(t.board_id, payload.columnId, db)

  from_column = t.column_id
  to_column = column.id
  to_idx = max(payload.toIndex, 0)

  # Dragging an overdue task along an automation rule requires resolving its due date first.
  today = today_iso(tz=settings.automation_timezone)
  flow = OverrideFlow(allow_skip=settings.automation_allow_skip_override)
  rules = await load_enabled_rules(db, t.board_id)
  pending = flow.intercept(task_snapshot(t), to_column, to_idx, rules, today)
  override_action = None
  old_due = t.due_date
  new_due = t.due_date
  if pending is not None:
    if payload.override is None:
      flow.cancel()
      raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
          "code": "due_date_required",
          "message": "Task is overdue; choose a new due date before moving it",
          "pendingMove": pending.as_dict(),
          "currentDueDate": pending.current_due_date,
          "earliestDueDate": earliest_allowed_date(today),
          "allowSkip": flow.allow_skip,
        },
      )
    decision = flow.resolve(payload.override.action, today=today, new_due_date=payload.override.dueDate)
    override_action = decision.action
    if decision.due_date_changed and decision.due_date is not None:
      new_due = date.fromisoformat(decision.due_date)

  # Siblings are reindexed through the session; the moved row itself is only written by the
  # version-guarded update below so a concurrent automated move is never overwritten.
  if from_column == to_column:
    res = await db.execute(select(Task).where(Task.board_id == t.board_id, Task.column_id == from_column).order_by(Task.order_index.asc()))
    arr = [x for x in res.scalars().all() if x.id != t.id]
    to_idx = min(to_idx, len(arr))
    for idx, x in enumerate(arr):
      x.order_index = idx if idx < to_idx else idx + 1
  else:
    f_res = await db.execute(select(Task).where(Task.board_id == t.board_id, Task.column_id == from_column).order_by(Task.order_index.asc()))
    t_res = await db.execute(select(Task).where(Task.board_id == t.board_id, Task.column_id == to_column).order_by(Task.order_index.asc()))
    from_arr = [x for x in f_res.scalars().all() if x.id != t.id]
    to_arr = [x for x in t_res.scalars().all() if x.id != t.id]
    to_idx = min(to_idx, len(to_arr))
    for idx, x in enumerate(from_arr):
      x.order_index = idx
    for idx, x in enumerate(to_arr):
      x.order_index = idx if idx < to_idx else idx + 1

  res = await db.execute(
    update(Task)
    .where(Task.id == t.id, Task.version == payload.version)
    .values(column_id=to_column, order_index=to_idx, due_date=new_due, version=payload.version + 1, updated_at=utcnow())
    .execution_options(synchronize_session=False)
  )
  if res.rowcount == 0:
    await db.rollback()
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Version conflict")

  await write_audit(
    db,
    event_type="task.moved",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    actor_id=user.id,
    payload={
      "source": "manual",
      "fromColumnId": from_column,
      "toColumnId": to_column,
      "toIndex": to_idx,
      "override": override_action,
      "previousDueDate": old_due,
      "dueDate": new_due,
    },
  )
  await db.commit()
  await db.refresh(t)
  return _task_out(t)
