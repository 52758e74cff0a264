from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.automation.engine import today_iso
from boardflow.automation.poller import sweep_boards
from boardflow.config import settings
from boardflow.deps import get_db, require_job_token
from boardflow.notifications.dispatcher import dispatch_due_notifications_once
from boardflow.schemas import AutomationSweepOut, BatchResultOut, DispatchOut

# Scheduler-facing endpoints (cron, pg_cron, an external job runner).
router = APIRouter(prefix="/jobs", tags=["jobs"], dependencies=[Depends(require_job_token)])


@router.post("/send-notifications", response_model=DispatchOut)
async def send_notifications(db: AsyncSession = Depends(get_db)) -> DispatchOut:
  summary = await dispatch_due_notifications_once(db, limit=settings.notification_batch_limit)
  return DispatchOut(**summary.as_dict())


@router.post("/run-automation", response_model=AutomationSweepOut)
async def run_automation(db: AsyncSession = Depends(get_db)) -> AutomationSweepOut:
  results = await sweep_boards(db, today=today_iso(tz=settings.automation_timezone))
  return AutomationSweepOut(boards=[BatchResultOut(**r.as_dict()) for r in results])
