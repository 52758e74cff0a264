from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import anyio
import pytest
from sqlalchemy import select, update

from boardflow.automation.mover import BatchResult
from boardflow.automation.poller import STATE_IDLE, STATE_SCANNING, AutomationRegistry, BoardPoller, sweep_boards
from boardflow.db import SessionLocal
from boardflow.models import AutomationRule, Task

from tests.conftest import create_user, seed_board, seed_rule, seed_task

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 10)


async def _column_of(task_id: str) -> str:
  async with SessionLocal() as db:
    return (await db.execute(select(Task.column_id).where(Task.id == task_id))).scalar_one()


@pytest.mark.anyio
async def test_start_runs_one_cycle_immediately() -> None:
  owner_id, _ = await create_user()
  board_id, cols = await seed_board(owner_id=owner_id)
  await seed_rule(board_id, cols["To Do"], cols["Overdue"])
  task_id = await seed_task(board_id, cols["To Do"], due_date=TODAY - timedelta(days=1))

  seen: list[BatchResult] = []
  poller = BoardPoller(SessionLocal, interval_seconds=3600, on_tasks_updated=seen.append, clock=lambda: NOW)
  try:
    await poller.start(board_id)
    assert poller.running
    assert poller.board_id == board_id
    assert len(poller.rules) == 1
    assert poller.state == STATE_IDLE
    assert poller.last_result is not None and poller.last_result.moved == [task_id]
    assert [r.moved for r in seen] == [[task_id]]
  finally:
    await poller.stop()

  assert not poller.running
  assert poller.board_id is None
  assert await _column_of(task_id) == cols["Overdue"]


@pytest.mark.anyio
async def test_timer_picks_up_tasks_that_become_due() -> None:
  owner_id, _ = await create_user()
  board_id, cols = await seed_board(owner_id=owner_id)
  await seed_rule(board_id, cols["In Progress"], cols["Overdue"])

  poller = BoardPoller(SessionLocal, interval_seconds=0.05, clock=lambda: NOW)
  await poller.start(board_id)
  try:
    task_id = await seed_task(board_id, cols["In Progress"], due_date=TODAY)
    with anyio.fail_after(5):
      while await _column_of(task_id) != cols["Overdue"]:
        await anyio.sleep(0.05)
  finally:
    await poller.stop()


@pytest.mark.anyio
async def test_stopped_poller_no_longer_moves_tasks() -> None:
  owner_id, _ = await create_user()
  board_id, cols = await seed_board(owner_id=owner_id)
  await seed_rule(board_id, cols["To Do"], cols["Overdue"])

  poller = BoardPoller(SessionLocal, interval_seconds=0.02, clock=lambda: NOW)
  await poller.start(board_id)
  await poller.stop()

  task_id = await seed_task(board_id, cols["To Do"], due_date=TODAY - timedelta(days=5))
  await anyio.sleep(0.15)
  assert await _column_of(task_id) == cols["To Do"]
  assert await poller.run_cycle() is None


@pytest.mark.anyio
async def test_tick_is_skipped_while_a_cycle_is_scanning() -> None:
  owner_id, _ = await create_user()
  board_id, cols = await seed_board(owner_id=owner_id)
  await seed_rule(board_id, cols["To Do"], cols["Overdue"])
  task_id = await seed_task(board_id, cols["To Do"], due_date=TODAY - timedelta(days=1))

  poller = BoardPoller(SessionLocal, clock=lambda: NOW)
  poller.board_id = board_id
  await poller.reload_rules()
  poller.state = STATE_SCANNING
  assert await poller.run_cycle() is None
  assert await _column_of(task_id) == cols["To Do"]

  poller.state = STATE_IDLE
  result = await poller.run_cycle()
  assert result is not None and result.moved == [task_id]
  assert poller.state == STATE_IDLE


@pytest.mark.anyio
async def test_callback_is_dropped_after_board_switch() -> None:
  seen: list[BatchResult] = []
  poller = BoardPoller(SessionLocal, on_tasks_updated=seen.append, clock=lambda: NOW)
  poller.board_id = "board-a"
  cb = poller._callback_for("board-a")

  poller.board_id = "board-b"
  await cb(BatchResult(board_id="board-a", moved=["t1"]))
  assert seen == []

  poller.board_id = "board-a"
  await cb(BatchResult(board_id="board-a", moved=["t1"]))
  assert [r.moved for r in seen] == [["t1"]]


@pytest.mark.anyio
async def test_switch_board_uses_new_rules() -> None:
  owner_id, _ = await create_user()
  board_a, cols_a = await seed_board(owner_id=owner_id)
  board_b, cols_b = await seed_board(owner_id=owner_id)
  await seed_rule(board_a, cols_a["To Do"], cols_a["Overdue"])
  await seed_rule(board_b, cols_b["To Do"], cols_b["Done"])
  task_b = await seed_task(board_b, cols_b["To Do"], due_date=TODAY)

  poller = BoardPoller(SessionLocal, interval_seconds=3600, clock=lambda: NOW)
  await poller.start(board_a)
  try:
    await poller.switch_board(board_b)
    assert poller.board_id == board_b
    assert [r.board_id for r in poller.rules] == [board_b]
  finally:
    await poller.stop()
  assert await _column_of(task_b) == cols_b["Done"]


@pytest.mark.anyio
async def test_registry_tracks_boards_with_enabled_rules() -> None:
  owner_id, _ = await create_user()
  board_a, cols_a = await seed_board(owner_id=owner_id)
  board_b, _cols_b = await seed_board(owner_id=owner_id)
  rule_a = await seed_rule(board_a, cols_a["To Do"], cols_a["Overdue"])

  registry = AutomationRegistry(SessionLocal, interval_seconds=3600)
  try:
    await registry.sync()
    assert board_a in registry
    assert board_b not in registry
    assert len(registry) == 1
    assert registry.get(board_a).running

    assert await registry.refresh(board_b) is None

    async with SessionLocal() as db:
      await db.execute(update(AutomationRule).where(AutomationRule.id == rule_a).values(enabled=False))
      await db.commit()
    assert await registry.refresh(board_a) is None
    assert board_a not in registry
  finally:
    await registry.close()
  assert len(registry) == 0


@pytest.mark.anyio
async def test_sweep_boards_evaluates_every_ruled_board() -> None:
  owner_id, _ = await create_user()
  board_a, cols_a = await seed_board(owner_id=owner_id)
  board_b, cols_b = await seed_board(owner_id=owner_id)
  await seed_rule(board_a, cols_a["To Do"], cols_a["Overdue"])
  t_a = await seed_task(board_a, cols_a["To Do"], due_date=TODAY)
  t_b = await seed_task(board_b, cols_b["To Do"], due_date=TODAY)

  async with SessionLocal() as db:
    results = await sweep_boards(db, today=TODAY.isoformat())

  assert [(r.board_id, r.moved) for r in results] == [(board_a, [t_a])]
  assert await _column_of(t_b) == cols_b["To Do"]
