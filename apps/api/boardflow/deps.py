from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.config import settings
from boardflow.db import SessionLocal
from boardflow.models import ApiToken, Board, User
from boardflow.security import api_token_hash, bearer_matches


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  token = auth.split(" ", 1)[1].strip()
  if not token:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

  tres = await db.execute(select(ApiToken).where(ApiToken.token_hash == api_token_hash(token), ApiToken.revoked_at.is_(None)))
  t = tres.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
  ures = await db.execute(select(User).where(User.id == t.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  return u


async def require_board_owner(board_id: str, user: User, db: AsyncSession) -> Board:
  res = await db.execute(select(Board).where(Board.id == board_id))
  b = res.scalar_one_or_none()
  if not b:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Board not found")
  if b.owner_id != user.id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No board access")
  return b


async def require_job_token(request: Request) -> None:
  if not settings.job_token:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Job endpoint not configured")
  if not bearer_matches(request.headers.get("authorization"), settings.job_token):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid bearer token")
