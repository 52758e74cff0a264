from __future__ import annotations

import asyncio
import inspect
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boardflow.automation.engine import RuleSnapshot, plan_moves, today_iso
from boardflow.automation.mover import BatchResult, TasksUpdatedCallback, apply_moves
from boardflow.automation.rules import boards_with_enabled_rules, load_board_tasks, load_enabled_rules

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_SCANNING = "scanning"


async def evaluate_board(
  db: AsyncSession,
  board_id: str,
  rules: list[RuleSnapshot],
  *,
  today: str,
  actor_id: str | None = None,
  on_tasks_updated: TasksUpdatedCallback | None = None,
) -> BatchResult:
  if not rules:
    return BatchResult(board_id=board_id)
  tasks = await load_board_tasks(db, board_id)
  moves = plan_moves(tasks, rules, today)
  return await apply_moves(db, moves, board_id=board_id, actor_id=actor_id, on_tasks_updated=on_tasks_updated)


async def sweep_boards(db: AsyncSession, *, today: str, board_ids: list[str] | None = None) -> list[BatchResult]:
  """One evaluation pass over every board with enabled rules (or the given ones)."""
  if board_ids is None:
    board_ids = await boards_with_enabled_rules(db)
  out: list[BatchResult] = []
  for board_id in board_ids:
    rules = await load_enabled_rules(db, board_id)
    out.append(await evaluate_board(db, board_id, rules, today=today))
  return out


class BoardPoller:
  """
  Fixed-interval automation for one board.

  The poller owns the rule set it evaluates; rules are (re)loaded on `start` and
  `reload_rules` and handed to every cycle explicitly. `stop` cancels the timer but
  lets an in-flight cycle finish; that cycle's `on_tasks_updated` is dropped once the
  poller no longer watches the board.
  """

  def __init__(
    self,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    interval_seconds: float = 60,
    tz: str | None = "UTC",
    on_tasks_updated: TasksUpdatedCallback | None = None,
    clock: Callable[[], datetime] | None = None,
  ) -> None:
    self._session_factory = session_factory
    self.interval_seconds = max(0.01, float(interval_seconds))
    self.tz = tz
    self._on_tasks_updated = on_tasks_updated
    self._clock = clock or (lambda: datetime.now(timezone.utc))
    self._timer: asyncio.Task | None = None
    self.board_id: str | None = None
    self.rules: list[RuleSnapshot] = []
    self.state = STATE_IDLE
    self.last_result: BatchResult | None = None
    self.last_run_at: datetime | None = None

  @property
  def running(self) -> bool:
    return self._timer is not None and not self._timer.done()

  async def reload_rules(self) -> list[RuleSnapshot]:
    board_id = self.board_id
    if board_id is None:
      self.rules = []
      return self.rules
    async with self._session_factory() as db:
      rules = await load_enabled_rules(db, board_id)
    if self.board_id == board_id:
      self.rules = rules
    return rules

  async def start(self, board_id: str) -> None:
    if self.board_id is not None:
      await self.stop()
    self.board_id = board_id
    await self.reload_rules()
    await self._guarded_cycle()
    self._timer = asyncio.create_task(self._tick_loop(board_id), name=f"automation:{board_id}")

  async def switch_board(self, board_id: str) -> None:
    await self.stop()
    await self.start(board_id)

  async def stop(self) -> None:
    timer = self._timer
    self._timer = None
    self.board_id = None
    self.rules = []
    if timer is None:
      return
    timer.cancel()
    try:
      await timer
    except asyncio.CancelledError:
      pass

  async def run_cycle(self) -> BatchResult | None:
    board_id = self.board_id
    if board_id is None:
      return None
    if self.state == STATE_SCANNING:
      logger.debug("automation: cycle for board %s still running; tick skipped", board_id)
      return None
    self.state = STATE_SCANNING
    try:
      now = self._clock()
      async with self._session_factory() as db:
        result = await evaluate_board(
          db,
          board_id,
          list(self.rules),
          today=today_iso(now, self.tz),
          on_tasks_updated=self._callback_for(board_id),
        )
      self.last_result = result
      self.last_run_at = now
      return result
    finally:
      self.state = STATE_IDLE

  def _callback_for(self, board_id: str) -> TasksUpdatedCallback:
    async def _cb(result: BatchResult) -> None:
      if self._on_tasks_updated is None or self.board_id != board_id:
        return
      out = self._on_tasks_updated(result)
      if inspect.isawaitable(out):
        await out

    return _cb

  async def _guarded_cycle(self) -> None:
    try:
      await self.run_cycle()
    except Exception:
      # A failed cycle never stops the timer; the next tick starts from fresh state.
      logger.exception("automation: cycle failed for board %s", self.board_id)

  async def _tick_loop(self, board_id: str) -> None:
    while self.board_id == board_id:
      await asyncio.sleep(self.interval_seconds)
      if self.board_id != board_id:
        return
      await asyncio.shield(self._guarded_cycle())


class AutomationRegistry:
  """One BoardPoller per board that has at least one enabled rule."""

  def __init__(
    self,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    interval_seconds: float = 60,
    tz: str | None = "UTC",
    on_tasks_updated: TasksUpdatedCallback | None = None,
  ) -> None:
    self._session_factory = session_factory
    self.interval_seconds = interval_seconds
    self.tz = tz
    self._on_tasks_updated = on_tasks_updated
    self._pollers: dict[str, BoardPoller] = {}

  def __contains__(self, board_id: object) -> bool:
    return board_id in self._pollers

  def __len__(self) -> int:
    return len(self._pollers)

  def get(self, board_id: str) -> BoardPoller | None:
    return self._pollers.get(board_id)

  async def sync(self) -> None:
    async with self._session_factory() as db:
      board_ids = await boards_with_enabled_rules(db)
    for stale in set(self._pollers) - set(board_ids):
      await self.discard(stale)
    for board_id in board_ids:
      await self.refresh(board_id)

  async def refresh(self, board_id: str) -> BoardPoller | None:
    poller = self._pollers.get(board_id)
    if poller is not None:
      if not await poller.reload_rules():
        await self.discard(board_id)
        return None
      return poller

    async with self._session_factory() as db:
      rules = await load_enabled_rules(db, board_id)
    if not rules:
      return None
    poller = BoardPoller(
      self._session_factory,
      interval_seconds=self.interval_seconds,
      tz=self.tz,
      on_tasks_updated=self._on_tasks_updated,
    )
    self._pollers[board_id] = poller
    await poller.start(board_id)
    return poller

  async def discard(self, board_id: str) -> None:
    poller = self._pollers.pop(board_id, None)
    if poller is not None:
      await poller.stop()

  async def close(self) -> None:
    for board_id in list(self._pollers):
      await self.discard(board_id)
