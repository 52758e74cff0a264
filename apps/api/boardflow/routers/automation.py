from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from boardflow.audit import write_audit
from boardflow.automation.engine import today_iso
from boardflow.automation.poller import evaluate_board
from boardflow.automation.rules import load_enabled_rules, validate_rule_columns
from boardflow.config import settings
from boardflow.deps import get_current_user, get_db, require_board_owner
from boardflow.models import AutomationRule, User, new_id
from boardflow.schemas import BatchResultOut, RuleCreateIn, RuleOut, RuleUpdateIn

logger = logging.getLogger(__name__)

router = APIRouter(tags=["automation"])


def _rule_out(r: AutomationRule) -> RuleOut:
  return RuleOut(
    id=r.id,
    boardId=r.board_id,
    sourceColumnId=r.source_column_id,
    targetColumnId=r.target_column_id,
    triggerType=r.trigger_type,
    enabled=bool(r.enabled),
    createdAt=r.created_at,
  )


async def _refresh_poller(request: Request, board_id: str) -> None:
  registry = getattr(request.app.state, "automation", None)
  if registry is None:
    return
  try:
    await registry.refresh(board_id)
  except Exception:
    # The rule change is committed; the next registry sync picks it up.
    logger.exception("automation: poller refresh failed for board %s", board_id)


async def _load_rule(rule_id: str, user: User, db: AsyncSession) -> AutomationRule:
  res = await db.execute(select(AutomationRule).where(AutomationRule.id == rule_id))
  r = res.scalar_one_or_none()
  if not r:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")
  await require_board_owner(r.board_id, user, db)
  return r


@router.get("/boards/{board_id}/automation/rules", response_model=list[RuleOut])
async def list_rules(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[RuleOut]:
  await require_board_owner(board_id, user, db)
  res = await db.execute(
    select(AutomationRule)
    .where(AutomationRule.board_id == board_id)
    .order_by(AutomationRule.created_at.asc(), AutomationRule.id.asc())
  )
  return [_rule_out(r) for r in res.scalars().all()]


@router.post("/boards/{board_id}/automation/rules", response_model=RuleOut)
async def create_rule(
  board_id: str,
  payload: RuleCreateIn,
  request: Request,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> RuleOut:
  await require_board_owner(board_id, user, db)
  await validate_rule_columns(
    db,
    board_id=board_id,
    source_column_id=payload.sourceColumnId,
    target_column_id=payload.targetColumnId,
    trigger_type=payload.triggerType,
  )
  r = AutomationRule(
    id=new_id(),
    board_id=board_id,
    source_column_id=payload.sourceColumnId,
    target_column_id=payload.targetColumnId,
    trigger_type=payload.triggerType,
    enabled=payload.enabled,
  )
  db.add(r)
  await write_audit(
    db,
    event_type="automation_rule.created",
    entity_type="AutomationRule",
    entity_id=r.id,
    board_id=board_id,
    actor_id=user.id,
    payload={"sourceColumnId": r.source_column_id, "targetColumnId": r.target_column_id, "enabled": r.enabled},
  )
  await db.commit()
  await db.refresh(r)
  await _refresh_poller(request, board_id)
  return _rule_out(r)


@router.patch("/automation/rules/{rule_id}", response_model=RuleOut)
async def update_rule(
  rule_id: str,
  payload: RuleUpdateIn,
  request: Request,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> RuleOut:
  r = await _load_rule(rule_id, user, db)
  source = payload.sourceColumnId if payload.sourceColumnId is not None else r.source_column_id
  target = payload.targetColumnId if payload.targetColumnId is not None else r.target_column_id
  if source != r.source_column_id or target != r.target_column_id:
    await validate_rule_columns(db, board_id=r.board_id, source_column_id=source, target_column_id=target, trigger_type=r.trigger_type)
  r.source_column_id = source
  r.target_column_id = target
  if payload.enabled is not None:
    r.enabled = payload.enabled

  await write_audit(
    db,
    event_type="automation_rule.updated",
    entity_type="AutomationRule",
    entity_id=r.id,
    board_id=r.board_id,
    actor_id=user.id,
    payload={"sourceColumnId": r.source_column_id, "targetColumnId": r.target_column_id, "enabled": r.enabled},
  )
  await db.commit()
  await db.refresh(r)
  await _refresh_poller(request, r.board_id)
  return _rule_out(r)


@router.delete("/automation/rules/{rule_id}")
async def delete_rule(rule_id: str, request: Request, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  r = await _load_rule(rule_id, user, db)
  board_id = r.board_id
  await db.execute(delete(AutomationRule).where(AutomationRule.id == rule_id))
  await write_audit(
    db,
    event_type="automation_rule.deleted",
    entity_type="AutomationRule",
    entity_id=rule_id,
    board_id=board_id,
    actor_id=user.id,
    payload={"sourceColumnId": r.source_column_id, "targetColumnId": r.target_column_id},
  )
  await db.commit()
  await _refresh_poller(request, board_id)
  return {"ok": True}


@router.post("/boards/{board_id}/automation/run", response_model=BatchResultOut)
async def run_automation(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BatchResultOut:
  await require_board_owner(board_id, user, db)
  rules = await load_enabled_rules(db, board_id)
  result = await evaluate_board(db, board_id, rules, today=today_iso(tz=settings.automation_timezone))
  return BatchResultOut(**result.as_dict())
