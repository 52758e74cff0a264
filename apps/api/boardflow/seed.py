from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from boardflow.db import SessionLocal
from boardflow.models import ApiToken, AutomationRule, Board, BoardColumn, Task, User, new_id
from boardflow.security import api_token_hash, api_token_new, token_hint


async def seed() -> None:
  async with SessionLocal() as db:
    owner_email = os.getenv("SEED_OWNER_EMAIL", "owner@boardflow.local").strip().lower()
    res = await db.execute(select(User).where(User.email == owner_email))
    owner = res.scalar_one_or_none()
    if not owner:
      owner = User(id=new_id(), email=owner_email, name="Owner", notification_url=(os.getenv("SEED_NOTIFICATION_URL") or None))
      db.add(owner)

    # API tokens are only verified by the service; issuing them is the seed's job.
    token = api_token_new()
    db.add(ApiToken(id=new_id(), user_id=owner.id, name="seed", token_hash=api_token_hash(token), token_hint=token_hint(token)))

    if os.getenv("SEED_DEMO_BOARD", "").strip().lower() in ("1", "true", "yes", "y"):
      board_name = "boardflow demo"
      bres = await db.execute(select(Board).where(Board.name == board_name, Board.owner_id == owner.id))
      board = bres.scalar_one_or_none()
      if not board:
        board = Board(id=new_id(), name=board_name, owner_id=owner.id)
        db.add(board)
        columns = [BoardColumn(id=new_id(), board_id=board.id, name=name, position=idx) for idx, name in enumerate(["To Do", "In Progress", "Overdue", "Done"])]
        db.add_all(columns)
        todo, doing, overdue, _done = columns
        db.add(AutomationRule(id=new_id(), board_id=board.id, source_column_id=todo.id, target_column_id=overdue.id))
        db.add(AutomationRule(id=new_id(), board_id=board.id, source_column_id=doing.id, target_column_id=overdue.id))

        today = datetime.now(timezone.utc).date()
        samples = [
          (todo, "Already late", today - timedelta(days=2)),
          (todo, "Due today", today),
          (doing, "Due next week", today + timedelta(days=7)),
        ]
        for idx, (column, title, due) in enumerate(samples):
          db.add(
            Task(
              id=new_id(),
              board_id=board.id,
              column_id=column.id,
              title=title,
              description="",
              due_date=due,
              notification_at=datetime.combine(due, datetime.min.time(), tzinfo=timezone.utc) + timedelta(hours=9),
              order_index=idx,
              version=0,
            )
          )

    await db.commit()
    print("boardflow seed API token created:")
    print(f"  {owner_email}={token}")


def main() -> None:
  asyncio.run(seed())


if __name__ == "__main__":
  main()
