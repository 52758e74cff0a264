from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.deps import get_current_user, get_db
from boardflow.models import InAppNotification, User
from boardflow.schemas import InAppNotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _inapp_out(n: InAppNotification) -> InAppNotificationOut:
  return InAppNotificationOut(
    id=n.id,
    level=n.level,
    title=n.title,
    body=n.body,
    eventType=n.event_type,
    entityType=n.entity_type,
    entityId=n.entity_id,
    readAt=n.read_at,
    createdAt=n.created_at,
  )


@router.get("/inapp", response_model=list[InAppNotificationOut])
async def list_inapp_notifications(
  unreadOnly: bool = False,
  limit: int = 50,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[InAppNotificationOut]:
  limit = max(1, min(int(limit), 200))
  stmt = select(InAppNotification).where(InAppNotification.user_id == actor.id)
  if unreadOnly:
    stmt = stmt.where(InAppNotification.read_at.is_(None))
  stmt = stmt.order_by(InAppNotification.created_at.desc()).limit(limit)
  res = await db.execute(stmt)
  return [_inapp_out(n) for n in res.scalars().all()]


@router.post("/inapp/{notification_id}/read", response_model=InAppNotificationOut)
async def mark_inapp_read(
  notification_id: str,
  actor: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> InAppNotificationOut:
  res = await db.execute(select(InAppNotification).where(InAppNotification.id == notification_id, InAppNotification.user_id == actor.id))
  n = res.scalar_one_or_none()
  if not n:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
  if n.read_at is None:
    n.read_at = datetime.now(timezone.utc)
  await db.commit()
  return _inapp_out(n)
