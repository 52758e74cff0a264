from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  # Outbound webhook for scheduled task notifications.
  notification_url: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class ApiToken(Base):
  __tablename__ = "api_tokens"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  token_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  token_hint: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class BoardColumn(Base):
  __tablename__ = "columns"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  column_id: Mapped[str] = mapped_column(String(36), ForeignKey("columns.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
  notification_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
  notification_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  notification_status: Mapped[str | None] = mapped_column(String, nullable=True)  # delivered|failed|skipped
  notification_error: Mapped[str | None] = mapped_column(Text, nullable=True)
  order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AutomationRule(Base):
  __tablename__ = "automation_rules"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  source_column_id: Mapped[str] = mapped_column(String(36), ForeignKey("columns.id"), nullable=False)
  target_column_id: Mapped[str] = mapped_column(String(36), ForeignKey("columns.id"), nullable=False)
  trigger_type: Mapped[str] = mapped_column(String, nullable=False, default="due_date_reached")
  enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("boards.id"), nullable=True)
  task_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
  actor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class InAppNotification(Base):
  __tablename__ = "in_app_notifications"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  level: Mapped[str] = mapped_column(String, nullable=False, default="info")  # info | ok | warn | error
  title: Mapped[str] = mapped_column(String, nullable=False)
  body: Mapped[str] = mapped_column(Text, nullable=False)
  event_type: Mapped[str | None] = mapped_column(String, nullable=True)
  entity_type: Mapped[str | None] = mapped_column(String, nullable=True)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
