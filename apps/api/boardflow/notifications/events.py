from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.models import Board, InAppNotification

LEVELS = ("info", "ok", "warn", "error")


async def notify_inapp(
  db: AsyncSession,
  *,
  user_id: str,
  level: str,
  title: str,
  body: str,
  event_type: str | None = None,
  entity_type: str | None = None,
  entity_id: str | None = None,
) -> None:
  db.add(
    InAppNotification(
      user_id=user_id,
      level=level if level in LEVELS else "info",
      title=title,
      body=body,
      event_type=event_type,
      entity_type=entity_type,
      entity_id=entity_id,
    )
  )


async def notify_board_owner(
  db: AsyncSession,
  *,
  board_id: str,
  level: str,
  title: str,
  body: str,
  event_type: str | None = None,
) -> bool:
  res = await db.execute(select(Board.owner_id).where(Board.id == board_id))
  owner_id = res.scalar_one_or_none()
  if not owner_id:
    return False
  await notify_inapp(
    db,
    user_id=owner_id,
    level=level,
    title=title,
    body=body,
    event_type=event_type,
    entity_type="Board",
    entity_id=board_id,
  )
  return True
