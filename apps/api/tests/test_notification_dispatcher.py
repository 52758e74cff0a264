from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from httpx import AsyncClient
from sqlalchemy import select

from boardflow.db import SessionLocal
from boardflow.models import Task
from boardflow.notifications.dispatcher import dispatch_due_notifications_once

from tests.conftest import create_board, create_user, seed_board, seed_task

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def _recording_client(status_code: int = 200) -> tuple[httpx.AsyncClient, list[httpx.Request]]:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(status_code, json={"ok": status_code < 400})

  return httpx.AsyncClient(transport=httpx.MockTransport(handler)), seen


async def _task(task_id: str) -> Task:
  async with SessionLocal() as db:
    return (await db.execute(select(Task).where(Task.id == task_id))).scalar_one()


@pytest.mark.anyio
async def test_delivers_elapsed_notification_once() -> None:
  owner_id, _ = await create_user(notification_url="https://hooks.example.test/boardflow")
  board_id, cols = await seed_board(owner_id=owner_id)
  task_id = await seed_task(
    board_id,
    cols["In Progress"],
    title="Renew certificate",
    description="Expires soon",
    due_date=NOW.date(),
    notification_at=NOW - timedelta(minutes=1),
  )
  pending = await seed_task(board_id, cols["In Progress"], title="Tomorrow", notification_at=NOW + timedelta(days=1), order_index=1)
  unscheduled = await seed_task(board_id, cols["To Do"], title="No reminder")

  client, seen = _recording_client()
  async with client:
    async with SessionLocal() as db:
      summary = await dispatch_due_notifications_once(db, now=NOW, http_client=client)
    assert (summary.sent, summary.skipped, summary.failed) == (1, 0, 0)
    assert summary.as_dict()["message"] == "Sent 1 notifications"

    assert len(seen) == 1
    req = seen[0]
    assert req.method == "POST"
    assert str(req.url) == "https://hooks.example.test/boardflow"
    body = json.loads(req.content)
    assert body == {
      "subject": "Renew certificate",
      "message": "Expires soon",
      "board": "Seeded Board",
      "column": "In Progress",
      "due_date": NOW.date().isoformat(),
      "notification_at": (NOW - timedelta(minutes=1)).isoformat(),
      "task_id": task_id,
    }

    # A second invocation finds nothing to send.
    async with SessionLocal() as db:
      again = await dispatch_due_notifications_once(db, now=NOW, http_client=client)
    assert (again.sent, again.skipped, again.failed) == (0, 0, 0)
    assert len(seen) == 1

  t = await _task(task_id)
  assert t.notification_sent is True
  assert t.notification_status == "delivered"
  assert (await _task(pending)).notification_sent is False
  assert (await _task(unscheduled)).notification_sent is False


@pytest.mark.anyio
async def test_webhook_error_is_recorded_and_not_retried() -> None:
  owner_id, _ = await create_user(notification_url="https://hooks.example.test/down")
  board_id, cols = await seed_board(owner_id=owner_id)
  task_id = await seed_task(board_id, cols["To Do"], notification_at=NOW - timedelta(hours=2))

  client, seen = _recording_client(status_code=500)
  async with client:
    async with SessionLocal() as db:
      summary = await dispatch_due_notifications_once(db, now=NOW, http_client=client)
      assert (summary.sent, summary.failed) == (0, 1)
    async with SessionLocal() as db:
      await dispatch_due_notifications_once(db, now=NOW + timedelta(minutes=5), http_client=client)
  assert len(seen) == 1

  t = await _task(task_id)
  assert t.notification_sent is True
  assert t.notification_status == "failed"
  assert t.notification_error == "HTTP 500"


@pytest.mark.anyio
async def test_transport_error_marks_task_failed() -> None:
  owner_id, _ = await create_user(notification_url="https://hooks.example.test/timeout")
  board_id, cols = await seed_board(owner_id=owner_id)
  task_id = await seed_task(board_id, cols["To Do"], notification_at=NOW)

  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectTimeout("timed out", request=request)

  async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
    async with SessionLocal() as db:
      summary = await dispatch_due_notifications_once(db, now=NOW, http_client=client)
  assert summary.failed == 1

  t = await _task(task_id)
  assert t.notification_sent is True
  assert t.notification_status == "failed"
  assert "ConnectTimeout" in (t.notification_error or "")


@pytest.mark.anyio
async def test_owner_without_webhook_is_skipped_without_request() -> None:
  owner_id, _ = await create_user(notification_url=None)
  board_id, cols = await seed_board(owner_id=owner_id)
  task_id = await seed_task(board_id, cols["To Do"], notification_at=NOW - timedelta(days=1))

  client, seen = _recording_client()
  async with client:
    async with SessionLocal() as db:
      summary = await dispatch_due_notifications_once(db, now=NOW, http_client=client)
  assert (summary.sent, summary.skipped) == (0, 1)
  assert seen == []

  t = await _task(task_id)
  assert t.notification_sent is True
  assert t.notification_status == "skipped"


@pytest.mark.anyio
async def test_rescheduling_resets_sent_flag(client: AsyncClient) -> None:
  _, headers = await create_user(notification_url="https://hooks.example.test/boardflow")
  board, cols = await create_board(client, headers)
  task = (
    await client.post(
      f"/boards/{board['id']}/tasks",
      json={"columnId": cols["To Do"], "title": "Ping me", "notificationAt": "2026-03-10T08:00:00Z"},
      headers=headers,
    )
  ).json()
  assert task["notificationSent"] is False

  hook, seen = _recording_client()
  async with hook:
    async with SessionLocal() as db:
      await dispatch_due_notifications_once(db, now=NOW, http_client=hook)
    assert len(seen) == 1

    current = (await client.get(f"/tasks/{task['id']}", headers=headers)).json()
    assert current["notificationSent"] is True
    res = await client.patch(
      f"/tasks/{task['id']}",
      json={"version": current["version"], "notificationAt": "2026-03-10T08:30:00+00:00"},
      headers=headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["notificationSent"] is False
    assert res.json()["notificationStatus"] is None

    async with SessionLocal() as db:
      await dispatch_due_notifications_once(db, now=NOW, http_client=hook)
    assert len(seen) == 2
