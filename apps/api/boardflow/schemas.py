from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field
from pydantic import field_validator


_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def _parse_date_only(value: object) -> object:
  # Due dates are calendar days; a full timestamp is truncated to its date part.
  if value is None or isinstance(value, date) and not isinstance(value, datetime):
    return value
  if isinstance(value, datetime):
    return value.date()
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    head = s[:10]
    if not _DATE_ONLY_RE.fullmatch(head):
      raise ValueError("date must be YYYY-MM-DD")
    return date.fromisoformat(head)
  return value


def _parse_webhook_url(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if not (s.startswith("http://") or s.startswith("https://")):
      raise ValueError("notificationUrl must be an http(s) URL")
    return s
  return value


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  notificationUrl: str | None = None


class ProfileUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=120)
  notificationUrl: str | None = Field(default=None, max_length=2048)

  @field_validator("notificationUrl", mode="before")
  @classmethod
  def _url(cls, v: object) -> object:
    return _parse_webhook_url(v)


class BoardCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=200)
  columns: list[str] = ["To Do", "In Progress", "Done"]


class BoardOut(BaseModel):
  id: str
  name: str
  ownerId: str
  createdAt: datetime
  updatedAt: datetime


class ColumnCreateIn(BaseModel):
  name: str = Field(min_length=1, max_length=120)
  position: int | None = None


class ColumnUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=1, max_length=120)
  position: int | None = None


class ColumnOut(BaseModel):
  id: str
  boardId: str
  name: str
  position: int


class TaskCreateIn(BaseModel):
  columnId: str
  title: str = Field(min_length=1, max_length=500)
  description: str = ""
  dueDate: date | None = None
  notificationAt: datetime | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date(cls, v: object) -> object:
    return _parse_date_only(v)

  @field_validator("notificationAt", mode="before")
  @classmethod
  def _notification_at_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  version: int
  title: str | None = Field(default=None, min_length=1, max_length=500)
  description: str | None = None
  dueDate: date | None = None
  notificationAt: datetime | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date(cls, v: object) -> object:
    return _parse_date_only(v)

  @field_validator("notificationAt", mode="before")
  @classmethod
  def _notification_at_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class MoveOverrideIn(BaseModel):
  action: Literal["confirm", "skip"]
  dueDate: date | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date(cls, v: object) -> object:
    return _parse_date_only(v)


class TaskMoveIn(BaseModel):
  columnId: str
  toIndex: int = 0
  version: int
  override: MoveOverrideIn | None = None


class TaskOut(BaseModel):
  id: str
  boardId: str
  columnId: str
  title: str
  description: str
  dueDate: date | None
  notificationAt: datetime | None
  notificationSent: bool
  notificationStatus: str | None = None
  orderIndex: int
  version: int
  createdAt: datetime
  updatedAt: datetime


class RuleCreateIn(BaseModel):
  sourceColumnId: str
  targetColumnId: str
  triggerType: Literal["due_date_reached"] = "due_date_reached"
  enabled: bool = True


class RuleUpdateIn(BaseModel):
  sourceColumnId: str | None = None
  targetColumnId: str | None = None
  enabled: bool | None = None


class RuleOut(BaseModel):
  id: str
  boardId: str
  sourceColumnId: str
  targetColumnId: str
  triggerType: str
  enabled: bool
  createdAt: datetime


class BatchResultOut(BaseModel):
  boardId: str | None
  moved: list[str]
  conflicts: list[str]
  failed: list[str]
  error: str | None = None


class AutomationSweepOut(BaseModel):
  boards: list[BatchResultOut]


class InAppNotificationOut(BaseModel):
  id: str
  level: Literal["info", "ok", "warn", "error"]
  title: str
  body: str
  eventType: str | None = None
  entityType: str | None = None
  entityId: str | None = None
  readAt: datetime | None = None
  createdAt: datetime


class DispatchOut(BaseModel):
  message: str
  sent: int
  skipped: int
  failed: int
