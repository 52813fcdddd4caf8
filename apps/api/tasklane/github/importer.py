from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from dateutil import parser as date_parser
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasklane.audit import write_audit
from tasklane.config import settings
from tasklane.github.accounts import resolve_member
from tasklane.github.client import GitHubApiError, GitHubClient, client_for_board, split_repo_name
from tasklane.github.mapping import status_from_issue
from tasklane.github.outbound import TaskOrigin
from tasklane.github.payloads import IssueSnapshot, RepositoryRef
from tasklane.models import Board, BoardStatusColumn, Task, TaskStatus, utcnow
from tasklane.security import IntegrationSecretDecryptError

logger = logging.getLogger(__name__)


class GitHubSyncNotConfiguredError(RuntimeError):
  def __init__(self, board_id: str) -> None:
    super().__init__(f"GitHub sync is not configured for board {board_id}")
    self.board_id = board_id


def _parse_ts(value: str | None) -> datetime | None:
  if not value:
    return None
  try:
    return date_parser.isoparse(value)
  except (ValueError, OverflowError):
    return None


async def _column_for(db: AsyncSession, board_id: str, status: TaskStatus) -> BoardStatusColumn | None:
  res = await db.execute(
    select(BoardStatusColumn).where(BoardStatusColumn.board_id == board_id).order_by(BoardStatusColumn.position.asc())
  )
  columns = res.scalars().all()
  for c in columns:
    if c.status == status.value:
      return c
  return columns[0] if columns else None


async def _load_configured_board(db: AsyncSession, board_id: str) -> Board:
  board = await db.get(Board, board_id)
  if not board or not board.github_sync_active():
    raise GitHubSyncNotConfiguredError(board_id)
  return board


async def import_issue(
  db: AsyncSession,
  issue: dict[str, Any] | IssueSnapshot,
  repository: dict[str, Any] | RepositoryRef,
  board_id: str,
  *,
  client: GitHubClient | None = None,
  refetch: bool = True,
) -> Task:
  """Create or update the task mirroring a GitHub issue. Does not commit.

  The payload is a hint: the issue is re-read from GitHub and the payload is
  used only when that read fails.
  """
  board = await _load_configured_board(db, board_id)
  hint = issue if isinstance(issue, IssueSnapshot) else IssueSnapshot.from_payload(issue)
  repo_ref = repository if isinstance(repository, RepositoryRef) else RepositoryRef.from_payload(repository)

  snap = hint
  if refetch:
    try:
      gh = client or client_for_board(board)
      snap = IssueSnapshot.from_payload(await gh.get_issue(repo_ref.owner, repo_ref.name, hint.number))
    except (GitHubApiError, IntegrationSecretDecryptError, ValueError) as e:
      logger.info("Re-reading %s#%s failed (%s); using webhook payload", repo_ref.full_name, hint.number, e)

  status = status_from_issue(snap.state, snap.labels)
  column = await _column_for(db, board.id, status)

  assignee_id: str | None = None
  if snap.assignee:
    member = await resolve_member(db, snap.assignee, organization_id=board.organization_id)
    if member:
      assignee_id = member.id
    else:
      logger.info("GitHub user %r has no member on board %s; importing unassigned", snap.assignee, board.id)

  res = await db.execute(select(Task).where(Task.board_id == board.id, Task.github_issue_number == snap.number))
  task = res.scalar_one_or_none()
  created = task is None
  if task is None:
    task = Task(
      board_id=board.id,
      github_issue_number=snap.number,
      title=snap.title or f"Issue #{snap.number}",
      order_index=0,
    )
    db.add(task)
  elif snap.title:
    task.title = snap.title

  task.description = snap.body
  task.status = status.value
  task.status_column_id = column.id if column else None
  task.assignee_id = assignee_id
  task.github_updated_at = _parse_ts(snap.updated_at)
  task.github_last_sync_at = utcnow()
  if not created:
    task.version = int(task.version or 0) + 1
  await db.flush()

  await write_audit(
    db,
    event_type="task.github.imported",
    entity_type="Task",
    entity_id=task.id,
    board_id=board.id,
    task_id=task.id,
    payload={
      "origin": TaskOrigin.IMPORTED.value,
      "repository": repo_ref.full_name,
      "issueNumber": snap.number,
      "created": created,
      "status": status.value,
      "assignee": snap.assignee,
    },
  )
  return task


async def import_repository_issues(db: AsyncSession, board_id: str, *, client: GitHubClient | None = None) -> list[Task]:
  """Pull every issue of the board's repository (pull requests excluded)."""
  board = await _load_configured_board(db, board_id)
  owner, repo = split_repo_name(board.github_repo_name or "")
  gh = client or client_for_board(board)
  issues = await gh.list_issues(
    owner,
    repo,
    per_page=settings.github_project_items_page_size,
    max_pages=settings.github_project_items_max_pages,
  )
  ref = RepositoryRef(owner=owner, name=repo)
  out: list[Task] = []
  for raw in issues:
    if raw.get("pull_request"):
      continue
    # The listing already carries the full issue.
    out.append(await import_issue(db, raw, ref, board.id, client=gh, refetch=False))
  return out
