from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on Postgres, plain JSON elsewhere (the test-suite runs on SQLite).
JsonType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class TaskStatus(str, enum.Enum):
  TODO = "TODO"
  IN_PROGRESS = "IN_PROGRESS"
  IN_REVIEW = "IN_REVIEW"
  DONE = "DONE"
  BLOCKED = "BLOCKED"


class Base(DeclarativeBase):
  pass


class Organization(Base):
  __tablename__ = "organizations"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  github_username: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Member(Base):
  __tablename__ = "members"
  __table_args__ = (UniqueConstraint("organization_id", "user_id", name="ux_members_org_user"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  organization_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="member")
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  organization_id: Mapped[str] = mapped_column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  github_sync_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  github_access_token_encrypted: Mapped[str | None] = mapped_column(Text, nullable=True)
  github_token_hint: Mapped[str] = mapped_column(String, nullable=False, default="")
  github_repo_name: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  github_project_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

  def github_sync_active(self) -> bool:
    return bool(self.github_sync_enabled and self.github_access_token_encrypted and self.github_repo_name)


class BoardStatusColumn(Base):
  __tablename__ = "board_status_columns"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"
  __table_args__ = (UniqueConstraint("board_id", "github_issue_number", name="ux_tasks_board_github_issue"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  status_column_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("board_status_columns.id"), nullable=True)
  status: Mapped[str] = mapped_column(String, nullable=False, default=TaskStatus.TODO.value)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  assignee_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("members.id"), nullable=True)
  github_issue_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
  github_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  github_last_sync_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("boards.id"), nullable=True, index=True)
  task_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
  actor_id: Mapped[str | None] = mapped_column(String(36), ForeignKey("users.id"), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class InboundWebhookEvent(Base):
  __tablename__ = "inbound_webhook_events"
  __table_args__ = (
    UniqueConstraint("source", "idempotency_key", name="ux_inbound_webhook_source_idempotency"),
  )

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  source: Mapped[str] = mapped_column(String, nullable=False, index=True)
  event_type: Mapped[str | None] = mapped_column(String, nullable=True)
  idempotency_key: Mapped[str | None] = mapped_column(String, nullable=True)
  headers: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
  body: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False, default=dict)
  received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
  processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  result: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
