from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./boardflow_test.db")
os.environ.setdefault("JOB_TOKEN", "test-job-token")

from boardflow.config import settings
from boardflow.db import SessionLocal, engine
from boardflow.main import app
from boardflow.models import (
  ApiToken,
  AuditEvent,
  AutomationRule,
  Base,
  Board,
  BoardColumn,
  InAppNotification,
  Task,
  User,
  new_id,
)
from boardflow.security import api_token_hash, api_token_new, token_hint


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
  async with SessionLocal() as db:
    await db.execute(delete(AuditEvent))
    await db.execute(delete(InAppNotification))
    await db.execute(delete(AutomationRule))
    await db.execute(delete(Task))
    await db.execute(delete(BoardColumn))
    await db.execute(delete(Board))
    await db.execute(delete(ApiToken))
    await db.execute(delete(User))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend: str) -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. boardflow_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def create_user(email: str = "owner@boardflow.test", *, name: str = "Owner", notification_url: str | None = None) -> tuple[str, dict[str, str]]:
  token = api_token_new()
  user_id = new_id()
  async with SessionLocal() as db:
    db.add(User(id=user_id, email=email, name=name, notification_url=notification_url))
    await db.flush()
    db.add(ApiToken(id=new_id(), user_id=user_id, name="test", token_hash=api_token_hash(token), token_hint=token_hint(token)))
    await db.commit()
  return user_id, {"Authorization": f"Bearer {token}"}


async def create_board(client: AsyncClient, headers: dict[str, str], columns: list[str] | None = None) -> tuple[dict, dict[str, str]]:
  """Create a board over the API; returns (board, {column name: column id})."""
  names = columns or ["To Do", "In Progress", "Overdue", "Done"]
  res = await client.post("/boards", json={"name": "Test Board", "columns": names}, headers=headers)
  assert res.status_code == 200, res.text
  board = res.json()
  cols = (await client.get(f"/boards/{board['id']}/columns", headers=headers)).json()
  return board, {c["name"]: c["id"] for c in cols}


async def seed_board(*, owner_id: str, columns: list[str] | None = None) -> tuple[str, dict[str, str]]:
  """ORM-level board for tests that exercise automation without the HTTP layer."""
  names = columns or ["To Do", "In Progress", "Overdue", "Done"]
  board_id = new_id()
  col_ids = {name: new_id() for name in names}
  async with SessionLocal() as db:
    db.add(Board(id=board_id, name="Seeded Board", owner_id=owner_id))
    await db.flush()
    for pos, name in enumerate(names):
      db.add(BoardColumn(id=col_ids[name], board_id=board_id, name=name, position=pos))
    await db.commit()
  return board_id, col_ids


async def seed_rule(board_id: str, source_column_id: str, target_column_id: str, *, enabled: bool = True) -> str:
  rule_id = new_id()
  async with SessionLocal() as db:
    db.add(AutomationRule(id=rule_id, board_id=board_id, source_column_id=source_column_id, target_column_id=target_column_id, enabled=enabled))
    await db.commit()
  return rule_id


async def seed_task(
  board_id: str,
  column_id: str,
  *,
  title: str = "Task",
  due_date: date | None = None,
  order_index: int = 0,
  **fields,
) -> str:
  task_id = new_id()
  async with SessionLocal() as db:
    db.add(
      Task(
        id=task_id,
        board_id=board_id,
        column_id=column_id,
        title=title,
        description=fields.pop("description", ""),
        due_date=due_date,
        order_index=order_index,
        version=0,
        **fields,
      )
    )
    await db.commit()
  return task_id
