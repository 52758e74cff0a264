from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.automation.engine import iso_date
from boardflow.config import settings
from boardflow.models import Board, BoardColumn, Task, User
from boardflow.notifications.webhook import WebhookPayload, post_webhook, webhook_host

logger = logging.getLogger(__name__)

STATUS_DELIVERED = "delivered"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass
class DispatchSummary:
  sent: int = 0
  skipped: int = 0
  failed: int = 0
  task_ids: list[str] = field(default_factory=list)

  def as_dict(self) -> dict[str, Any]:
    return {
      "message": f"Sent {self.sent} notifications" if (self.sent or self.skipped or self.failed) else "No notifications to send",
      "sent": self.sent,
      "skipped": self.skipped,
      "failed": self.failed,
    }


def _as_utc(dt: datetime | None) -> datetime | None:
  if dt is None:
    return None
  return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def build_payload(task: Task, column: BoardColumn, board: Board) -> WebhookPayload:
  at = _as_utc(task.notification_at)
  return WebhookPayload(
    subject=task.title,
    message=task.description or "",
    board=board.name,
    column=column.name,
    due_date=iso_date(task.due_date),
    notification_at=at.isoformat() if at else None,
    task_id=task.id,
  )


async def _record(db: AsyncSession, task_id: str, *, status: str, error: str | None) -> None:
  await db.execute(
    update(Task)
    .where(Task.id == task_id)
    .values(notification_status=status, notification_error=error)
    .execution_options(synchronize_session=False)
  )
  await db.commit()


async def dispatch_due_notifications_once(
  db: AsyncSession,
  *,
  now: datetime | None = None,
  limit: int | None = None,
  http_client: httpx.AsyncClient | None = None,
) -> DispatchSummary:
  """
  Deliver elapsed task notifications to the board owner's webhook.

  - Each task is claimed (notification_sent=true, committed) before delivery, so a
    notification is attempted at most once even when invocations overlap.
  - Owners without a webhook are marked and skipped; they are never retried.
  - Delivery failures are logged and recorded on the task, not retried.
  """
  now = _as_utc(now) or datetime.now(timezone.utc)
  summary = DispatchSummary()

  res = await db.execute(
    select(Task, BoardColumn, Board, User)
    .join(BoardColumn, BoardColumn.id == Task.column_id)
    .join(Board, Board.id == BoardColumn.board_id)
    .join(User, User.id == Board.owner_id)
    .where(
      Task.notification_sent.is_(False),
      Task.notification_at.is_not(None),
      Task.notification_at <= now,
    )
    .order_by(Task.notification_at.asc())
    .limit(int(limit or settings.notification_batch_limit))
  )
  rows = res.all()
  if not rows:
    return summary

  owns_client = http_client is None
  client = http_client or httpx.AsyncClient(timeout=settings.notification_webhook_timeout_seconds)
  try:
    for task, column, board, owner in rows:
      payload = build_payload(task, column, board)
      url = (owner.notification_url or "").strip()

      claim = await db.execute(
        update(Task)
        .where(Task.id == task.id, Task.notification_sent.is_(False))
        .values(notification_sent=True)
        .execution_options(synchronize_session=False)
      )
      await db.commit()
      if claim.rowcount == 0:
        continue
      summary.task_ids.append(payload.task_id)

      if not url:
        await _record(db, payload.task_id, status=STATUS_SKIPPED, error=None)
        summary.skipped += 1
        continue

      result = await post_webhook(client, url, payload)
      if result.ok:
        logger.info("notification for task %s sent to %s: %s", payload.task_id, webhook_host(url), result.status_code)
        await _record(db, payload.task_id, status=STATUS_DELIVERED, error=None)
        summary.sent += 1
      else:
        logger.warning("notification for task %s to %s failed: %s", payload.task_id, webhook_host(url), result.error)
        await _record(db, payload.task_id, status=STATUS_FAILED, error=result.error)
        summary.failed += 1
  finally:
    if owns_client:
      await client.aclose()

  return summary
