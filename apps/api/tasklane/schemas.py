from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import field_validator

from tasklane.models import TaskStatus

REPO_NAME_RE = re.compile(r"^[\w\-\.]+/[\w\-\.]+$")


def _status_value(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, TaskStatus):
    return value.value
  if isinstance(value, str):
    s = value.strip().upper().replace(" ", "_").replace("-", "_")
    if s not in TaskStatus.__members__:
      raise ValueError(f"status must be one of {', '.join(TaskStatus.__members__)}")
    return s
  return value


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=500)
  description: str | None = None
  status: str = TaskStatus.TODO.value
  statusColumnId: str | None = None
  assigneeId: str | None = None

  @field_validator("status", mode="before")
  @classmethod
  def _status(cls, v: object) -> object:
    return _status_value(v) or TaskStatus.TODO.value


class TaskUpdateIn(BaseModel):
  version: int
  title: str | None = Field(default=None, min_length=1, max_length=500)
  description: str | None = None
  status: str | None = None
  assigneeId: str | None = None

  @field_validator("status", mode="before")
  @classmethod
  def _status(cls, v: object) -> object:
    return _status_value(v)


class TaskMoveIn(BaseModel):
  statusColumnId: str
  version: int


class TaskOut(BaseModel):
  id: str
  boardId: str
  statusColumnId: str | None
  status: str
  title: str
  description: str | None
  assigneeId: str | None
  githubIssueNumber: int | None
  githubUpdatedAt: datetime | None
  githubLastSyncAt: datetime | None
  orderIndex: int
  version: int
  createdAt: datetime
  updatedAt: datetime


class BoardGitHubOut(BaseModel):
  boardId: str
  enabled: bool
  repoName: str | None
  projectId: int | None
  tokenConfigured: bool
  tokenHint: str
  active: bool


class BoardGitHubUpdateIn(BaseModel):
  enabled: bool | None = None
  repoName: str | None = None
  projectId: int | None = None
  accessToken: str | None = None

  @field_validator("repoName", mode="before")
  @classmethod
  def _repo(cls, v: object) -> object:
    if v is None:
      return None
    s = str(v).strip()
    if not s:
      return None
    if not REPO_NAME_RE.fullmatch(s):
      raise ValueError("repoName must look like owner/name")
    return s

  @field_validator("projectId")
  @classmethod
  def _project(cls, v: int | None) -> int | None:
    if v is not None and v <= 0:
      raise ValueError("projectId must be a positive number")
    return v


class GitHubSyncIn(BaseModel):
  boardId: str
  direction: Literal["to-github", "from-github", "both"] = "both"


class SyncResultOut(BaseModel):
  outcome: Literal["success", "skipped", "failed"]
  reason: str | None = None
  steps: dict[str, str] = {}
  log: list[dict[str, Any]] = []


class GitHubSyncTaskOut(BaseModel):
  taskId: str
  issueNumber: int | None
  result: SyncResultOut


class GitHubSyncOut(BaseModel):
  boardId: str
  direction: str
  imported: int = 0
  pushed: list[GitHubSyncTaskOut] = []
  created: list[GitHubSyncTaskOut] = []


class WebhookEventOut(BaseModel):
  id: str
  source: str
  eventType: str | None
  idempotencyKey: str | None
  receivedAt: datetime
  processed: bool
  processedAt: datetime | None
  result: dict[str, Any] | None
  error: str | None


class WebhookInboundOut(BaseModel):
  ok: bool = True
  eventId: str
  idempotentReplay: bool = False
  result: dict[str, Any] | None = None


class AuditOut(BaseModel):
  id: str
  boardId: str | None
  taskId: str | None
  actorId: str | None
  eventType: str
  entityType: str
  entityId: str | None
  payload: dict[str, Any]
  createdAt: datetime
