"""
Standalone job runner for deployments that trigger work from cron instead of the API loops.

  boardflow-worker send-notifications
  boardflow-worker run-automation [--board BOARD_ID ...]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging

from boardflow.automation.engine import today_iso
from boardflow.automation.poller import sweep_boards
from boardflow.config import settings
from boardflow.db import SessionLocal
from boardflow.notifications.dispatcher import dispatch_due_notifications_once

logger = logging.getLogger("boardflow.worker")


async def _send_notifications(limit: int) -> dict:
  async with SessionLocal() as db:
    summary = await dispatch_due_notifications_once(db, limit=limit)
  return summary.as_dict()


async def _run_automation(board_ids: list[str] | None, tz: str) -> dict:
  async with SessionLocal() as db:
    results = await sweep_boards(db, today=today_iso(tz=tz), board_ids=board_ids)
  return {"boards": [r.as_dict() for r in results]}


def main(argv: list[str] | None = None) -> int:
  parser = argparse.ArgumentParser(prog="boardflow-worker", description="Run boardflow scheduled jobs once")
  parser.add_argument("--log-level", default=settings.log_level)
  sub = parser.add_subparsers(dest="command", required=True)

  p_send = sub.add_parser("send-notifications", help="Deliver elapsed task notifications to owner webhooks")
  p_send.add_argument("--limit", type=int, default=settings.notification_batch_limit)

  p_auto = sub.add_parser("run-automation", help="Evaluate due-date rules and move overdue tasks")
  p_auto.add_argument("--board", action="append", dest="boards", default=None, help="Board id (repeatable); default: all boards with rules")
  p_auto.add_argument("--timezone", default=settings.automation_timezone)

  args = parser.parse_args(argv)
  logging.basicConfig(level=str(args.log_level).upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

  if args.command == "send-notifications":
    out = asyncio.run(_send_notifications(max(1, args.limit)))
  else:
    out = asyncio.run(_run_automation(args.boards, args.timezone))

  print(json.dumps(out, indent=2))
  failed = [b for b in out.get("boards", []) if b["failed"]]
  for b in failed:
    logger.error("automation run failed board=%s tasks=%s error=%s", b["boardId"], ",".join(b["failed"]), b["error"])
  if failed:
    return 1
  logger.info("%s finished", args.command)
  return 0


if __name__ == "__main__":
  raise SystemExit(main())
