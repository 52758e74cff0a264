from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.audit import write_audit
from boardflow.deps import get_current_user, get_db, require_board_owner
from boardflow.models import AutomationRule, Board, BoardColumn, Task, User, new_id
from boardflow.schemas import BoardCreateIn, BoardOut, ColumnCreateIn, ColumnOut, ColumnUpdateIn

router = APIRouter(tags=["boards"])


def _board_out(b: Board) -> BoardOut:
  return BoardOut(id=b.id, name=b.name, ownerId=b.owner_id, createdAt=b.created_at, updatedAt=b.updated_at)


def _column_out(c: BoardColumn) -> ColumnOut:
  return ColumnOut(id=c.id, boardId=c.board_id, name=c.name, position=c.position)


@router.get("/boards", response_model=list[BoardOut])
async def list_boards(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[BoardOut]:
  res = await db.execute(select(Board).where(Board.owner_id == user.id).order_by(Board.created_at.asc()))
  return [_board_out(b) for b in res.scalars().all()]


@router.post("/boards", response_model=BoardOut)
async def create_board(payload: BoardCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = Board(id=new_id(), name=payload.name.strip(), owner_id=user.id)
  db.add(b)
  for pos, name in enumerate(n.strip() for n in payload.columns if n.strip()):
    db.add(BoardColumn(id=new_id(), board_id=b.id, name=name, position=pos))
  await write_audit(
    db,
    event_type="board.created",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    actor_id=user.id,
    payload={"name": b.name, "columns": payload.columns},
  )
  await db.commit()
  return _board_out(b)


@router.get("/boards/{board_id}", response_model=BoardOut)
async def get_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  b = await require_board_owner(board_id, user, db)
  return _board_out(b)


@router.get("/boards/{board_id}/columns", response_model=list[ColumnOut])
async def list_columns(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[ColumnOut]:
  await require_board_owner(board_id, user, db)
  res = await db.execute(select(BoardColumn).where(BoardColumn.board_id == board_id).order_by(BoardColumn.position.asc()))
  return [_column_out(c) for c in res.scalars().all()]


@router.post("/boards/{board_id}/columns", response_model=ColumnOut)
async def create_column(
  board_id: str,
  payload: ColumnCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> ColumnOut:
  await require_board_owner(board_id, user, db)
  pos = payload.position
  if pos is None:
    res = await db.execute(select(func.max(BoardColumn.position)).where(BoardColumn.board_id == board_id))
    max_pos = res.scalar_one()
    pos = (max_pos + 1) if max_pos is not None else 0
  c = BoardColumn(id=new_id(), board_id=board_id, name=payload.name.strip(), position=pos)
  db.add(c)
  await write_audit(
    db,
    event_type="column.created",
    entity_type="Column",
    entity_id=c.id,
    board_id=board_id,
    actor_id=user.id,
    payload={"name": c.name, "position": c.position},
  )
  await db.commit()
  return _column_out(c)


async def _load_column(column_id: str, user: User, db: AsyncSession) -> BoardColumn:
  res = await db.execute(select(BoardColumn).where(BoardColumn.id == column_id))
  c = res.scalar_one_or_none()
  if not c:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Column not found")
  await require_board_owner(c.board_id, user, db)
  return c


@router.patch("/columns/{column_id}", response_model=ColumnOut)
async def update_column(column_id: str, payload: ColumnUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> ColumnOut:
  c = await _load_column(column_id, user, db)
  if payload.name is not None:
    c.name = payload.name.strip()
  if payload.position is not None:
    c.position = payload.position
  await write_audit(
    db,
    event_type="column.updated",
    entity_type="Column",
    entity_id=c.id,
    board_id=c.board_id,
    actor_id=user.id,
    payload={"name": c.name, "position": c.position},
  )
  await db.commit()
  return _column_out(c)


@router.delete("/columns/{column_id}")
async def delete_column(column_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  c = await _load_column(column_id, user, db)

  tres = await db.execute(select(func.count()).select_from(Task).where(Task.column_id == column_id))
  if (tres.scalar_one() or 0) > 0:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Column has tasks; move them first")
  rres = await db.execute(
    select(func.count())
    .select_from(AutomationRule)
    .where(or_(AutomationRule.source_column_id == column_id, AutomationRule.target_column_id == column_id))
  )
  if (rres.scalar_one() or 0) > 0:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Column is used by automation rules; delete them first")

  await db.execute(delete(BoardColumn).where(BoardColumn.id == column_id))
  await write_audit(
    db,
    event_type="column.deleted",
    entity_type="Column",
    entity_id=column_id,
    board_id=c.board_id,
    actor_id=user.id,
    payload={"name": c.name},
  )
  await db.commit()
  return {"ok": True}
