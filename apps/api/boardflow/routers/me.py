from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.audit import write_audit
from boardflow.deps import get_current_user, get_db
from boardflow.models import User
from boardflow.schemas import ProfileUpdateIn, UserOut

router = APIRouter(tags=["me"])


def _user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name, notificationUrl=u.notification_url)


@router.get("/me", response_model=UserOut)
async def get_me(user: User = Depends(get_current_user)) -> UserOut:
  return _user_out(user)


@router.patch("/me", response_model=UserOut)
async def update_me(payload: ProfileUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UserOut:
  fields_set = payload.model_fields_set
  if "name" in fields_set and payload.name is not None:
    user.name = payload.name.strip()
  if "notificationUrl" in fields_set:
    user.notification_url = payload.notificationUrl
  await write_audit(
    db,
    event_type="user.profile_updated",
    entity_type="User",
    entity_id=user.id,
    actor_id=user.id,
    payload={"changed": sorted(fields_set), "notificationUrlSet": bool(user.notification_url)},
  )
  await db.commit()
  return _user_out(user)
