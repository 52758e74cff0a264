from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from boardflow.automation.mover import BatchResult
from boardflow.automation.override import OverrideError
from boardflow.automation.poller import AutomationRegistry
from boardflow.automation.rules import RuleValidationError
from boardflow.config import settings
from boardflow.db import SessionLocal
from boardflow.notifications.dispatcher import dispatch_due_notifications_once
from boardflow.routers.automation import router as automation_router
from boardflow.routers.boards import router as boards_router
from boardflow.routers.jobs import router as jobs_router
from boardflow.routers.me import router as me_router
from boardflow.routers.notifications import router as notifications_router
from boardflow.routers.tasks import router as tasks_router

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(
  title="boardflow API",
  version="0.1.0",
  docs_url="/docs" if settings.api_docs_enabled else None,
  redoc_url="/redoc" if settings.api_docs_enabled else None,
  openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@app.exception_handler(RuleValidationError)
async def _rule_validation_error_handler(_, exc: RuleValidationError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(OverrideError)
async def _override_error_handler(_, exc: OverrideError) -> JSONResponse:
  return JSONResponse(status_code=400, content={"detail": {"code": "invalid_override", "message": str(exc)}})


app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.cors_origin_list(),
  allow_origin_regex=settings.cors_origin_regex,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_host_list())

app.include_router(me_router)
app.include_router(boards_router)
app.include_router(tasks_router)
app.include_router(automation_router)
app.include_router(notifications_router)
app.include_router(jobs_router)


@app.middleware("http")
async def _security_headers_middleware(request, call_next):
  response = await call_next(request)
  response.headers.setdefault("X-Content-Type-Options", "nosniff")
  response.headers.setdefault("X-Frame-Options", "DENY")
  response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
  return response


@app.get("/health")
async def health() -> dict:
  return {"ok": True}


@app.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


_notification_loop_task: asyncio.Task | None = None


def _is_test_db() -> bool:
  try:
    db_name = settings.database_url.rsplit("/", 1)[-1]
    return "test" in db_name
  except Exception:
    return False


async def _log_tasks_updated(result: BatchResult) -> None:
  logger.info("automation: board %s updated (%d moved)", result.board_id, len(result.moved))


async def _notification_dispatch_loop() -> None:
  while True:
    await asyncio.sleep(max(5, int(settings.notification_dispatch_interval_seconds)))
    async with SessionLocal() as db:
      try:
        await dispatch_due_notifications_once(db, limit=settings.notification_batch_limit)
      except Exception:
        # Never crash the app due to notification failures.
        logger.exception("notifications: dispatch cycle failed")


@app.on_event("startup")
async def _startup() -> None:
  global _notification_loop_task
  app.state.automation = None
  if _is_test_db():
    return
  if not settings.app_secret or settings.app_secret.strip().lower() in {"dev-secret-change-me", "replace_with_strong_random_secret"}:
    raise RuntimeError("APP_SECRET is required and must not be a placeholder")
  if settings.automation_enabled:
    registry = AutomationRegistry(
      SessionLocal,
      interval_seconds=settings.automation_poll_interval_seconds,
      tz=settings.automation_timezone,
      on_tasks_updated=_log_tasks_updated,
    )
    app.state.automation = registry
    try:
      await registry.sync()
    except Exception:
      logger.exception("automation: initial registry sync failed")
  if settings.notification_dispatch_enabled and _notification_loop_task is None:
    _notification_loop_task = asyncio.create_task(_notification_dispatch_loop())


@app.on_event("shutdown")
async def _shutdown() -> None:
  global _notification_loop_task
  registry = getattr(app.state, "automation", None)
  if registry is not None:
    await registry.close()
    app.state.automation = None
  if _notification_loop_task is not None:
    _notification_loop_task.cancel()
    _notification_loop_task = None
