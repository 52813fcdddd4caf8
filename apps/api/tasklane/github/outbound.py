from __future__ import annotations

import enum
import logging

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from tasklane.audit import write_audit
from tasklane.db import SessionLocal
from tasklane.github.accounts import resolve_username
from tasklane.github.client import GitHubApiError, GitHubClient, client_for_board, split_repo_name
from tasklane.github.labels import reconcile_status_labels
from tasklane.github.mapping import coerce_status, issue_state_for, status_label
from tasklane.github.payloads import IssueSnapshot
from tasklane.github.project_sync import ProjectNotFoundError, ProjectScopeError, sync_project_field
from tasklane.github.results import SyncOutcome, SyncResult
from tasklane.models import Board, Task, utcnow
from tasklane.security import IntegrationSecretDecryptError

logger = logging.getLogger(__name__)


class TaskOrigin(str, enum.Enum):
  INTERNAL = "internal"
  IMPORTED = "importedFromExternal"


async def _load_mirror(db: AsyncSession, task_id: str) -> tuple[Task | None, Board | None, str | None]:
  task = await db.get(Task, task_id)
  if not task:
    return None, None, "Task not found"
  board = await db.get(Board, task.board_id)
  if not board or not board.github_sync_active():
    return task, None, "GitHub sync is not configured for this board"
  return task, board, None


async def _record(db: AsyncSession, task: Task, event_type: str, result: SyncResult, origin: TaskOrigin) -> None:
  await write_audit(
    db,
    event_type=event_type,
    entity_type="Task",
    entity_id=task.id,
    board_id=task.board_id,
    task_id=task.id,
    payload={"issueNumber": task.github_issue_number, "origin": origin.value, **result.to_dict()},
  )


async def _sync_assignees(db: AsyncSession, gh: GitHubClient, owner: str, repo: str, task: Task, current: IssueSnapshot) -> str:
  number = task.github_issue_number
  if not task.assignee_id:
    if current.assignees:
      await gh.remove_assignees(owner, repo, number, list(current.assignees))
    return "success"

  login = await resolve_username(db, task.assignee_id)
  if not login:
    return "skipped"
  stale = [a for a in current.assignees if a.lower() != login.lower()]
  if stale:
    await gh.remove_assignees(owner, repo, number, stale)
  if not any(a.lower() == login.lower() for a in current.assignees):
    await gh.add_assignees(owner, repo, number, [login])
  return "success"


async def _sync_project(gh: GitHubClient, board: Board, task: Task, result: SyncResult) -> None:
  if not board.github_project_id:
    return
  try:
    sub = await sync_project_field(gh, task.github_issue_number, board.github_project_id, task.status, board.github_repo_name)
  except (ProjectScopeError, ProjectNotFoundError) as e:
    logger.warning("Project sync failed for task %s: %s", task.id, e)
    result.step("project", "failed", str(e))
    return
  except GitHubApiError as e:
    logger.warning("Project sync failed for task %s: %s", task.id, e.message)
    result.step("project", "failed", e.message)
    return
  result.log.extend(sub.log)
  result.step("project", sub.outcome.value, sub.reason)


def _finish(result: SyncResult) -> SyncResult:
  failed = result.failed_steps
  if failed:
    result.outcome = SyncOutcome.FAILED
    result.reason = f"Failed steps: {', '.join(failed)}"
  return result


async def push_task_state(
  db: AsyncSession,
  task_id: str,
  *,
  origin: TaskOrigin = TaskOrigin.INTERNAL,
  client: GitHubClient | None = None,
) -> SyncResult:
  """Reflect a task's current state onto its mirrored GitHub issue.

  Never raises for GitHub failures; every outcome is returned as a SyncResult
  and written to the audit trail. Does not commit.
  """
  if origin == TaskOrigin.IMPORTED:
    return SyncResult.skipped("Change was imported from GitHub")

  task, board, reason = await _load_mirror(db, task_id)
  if task is None:
    return SyncResult.skipped(reason or "Task not found")
  if not task.github_issue_number:
    return SyncResult.skipped("Task is not linked to a GitHub issue")
  if board is None:
    return SyncResult.skipped(reason or "GitHub sync is not configured for this board")

  try:
    owner, repo = split_repo_name(board.github_repo_name or "")
    gh = client or client_for_board(board)
  except (ValueError, IntegrationSecretDecryptError) as e:
    result = SyncResult.failed(str(e))
    await _record(db, task, "task.github.pushed", result, origin)
    return result

  number = task.github_issue_number
  status = coerce_status(task.status)
  result = SyncResult.success()

  current: IssueSnapshot | None = None
  try:
    current = IssueSnapshot.from_payload(await gh.get_issue(owner, repo, number))
  except GitHubApiError as e:
    if e.not_found:
      logger.warning("GitHub issue %s#%s for task %s no longer exists", board.github_repo_name, number, task.id)
      result = SyncResult.failed(f"Issue #{number} not found in {board.github_repo_name}")
      await _record(db, task, "task.github.pushed", result, origin)
      return result
    logger.warning("Reading %s#%s failed: %s", board.github_repo_name, number, e.message)
    result.note("error", f"read: {e.message}")

  # assignees
  if current is None:
    result.step("assignees", "failed", "issue could not be read")
  else:
    try:
      outcome = await _sync_assignees(db, gh, owner, repo, task, current)
      if outcome == "skipped":
        logger.warning("Assignee of task %s has no GitHub username; leaving issue assignees unchanged", task.id)
        result.step("assignees", "skipped", "assignee has no GitHub username; issue assignees left unchanged")
      else:
        result.step("assignees", outcome)
    except GitHubApiError as e:
      logger.warning("Assignee sync failed for %s#%s: %s", board.github_repo_name, number, e.message)
      result.step("assignees", "failed", e.message)

  # status labels
  if current is None:
    result.step("labels", "failed", "issue could not be read")
  else:
    try:
      await reconcile_status_labels(gh, owner, repo, number, status, current=current.labels)
      result.step("labels", "success")
    except GitHubApiError as e:
      logger.warning("Label sync failed for %s#%s: %s", board.github_repo_name, number, e.message)
      result.step("labels", "failed", e.message)

  # title, body and state
  try:
    await gh.update_issue(
      owner,
      repo,
      number,
      title=task.title,
      body=task.description or "",
      state=issue_state_for(status),
    )
    result.step("issue", "success")
  except GitHubApiError as e:
    logger.warning("Issue update failed for %s#%s: %s", board.github_repo_name, number, e.message)
    result.step("issue", "failed", e.message)

  # project board, attempted even when the issue update failed
  await _sync_project(gh, board, task, result)

  _finish(result)
  if result.ok:
    task.github_last_sync_at = utcnow()
  await _record(db, task, "task.github.pushed", result, origin)
  return result


async def create_issue_for_task(db: AsyncSession, task_id: str, *, client: GitHubClient | None = None) -> SyncResult:
  """Open the mirrored issue for a task on a synced board. Does not commit."""
  task, board, reason = await _load_mirror(db, task_id)
  if task is None:
    return SyncResult.skipped(reason or "Task not found")
  if board is None:
    return SyncResult.skipped(reason or "GitHub sync is not configured for this board")
  if task.github_issue_number:
    return SyncResult.skipped(f"Task is already linked to issue #{task.github_issue_number}")

  try:
    owner, repo = split_repo_name(board.github_repo_name or "")
    gh = client or client_for_board(board)
  except (ValueError, IntegrationSecretDecryptError) as e:
    result = SyncResult.failed(str(e))
    await _record(db, task, "task.github.created", result, TaskOrigin.INTERNAL)
    return result

  status = coerce_status(task.status)
  try:
    issue = await gh.create_issue(owner, repo, title=task.title, body=task.description or "", labels=[status_label(status)])
  except GitHubApiError as e:
    logger.warning("Creating an issue for task %s failed: %s", task.id, e.message)
    result = SyncResult.failed(e.message)
    await _record(db, task, "task.github.created", result, TaskOrigin.INTERNAL)
    return result

  snap = IssueSnapshot.from_payload(issue)
  task.github_issue_number = snap.number
  result = SyncResult.success(f"Created issue #{snap.number}")
  result.step("issue", "success")

  # issues open on creation; a DONE task closes it
  if issue_state_for(status) != snap.state:
    try:
      await gh.update_issue(owner, repo, snap.number, title=task.title, body=task.description or "", state=issue_state_for(status))
    except GitHubApiError as e:
      logger.warning("Setting the state of issue #%s failed: %s", snap.number, e.message)
      result.step("issue", "failed", e.message)

  if task.assignee_id:
    try:
      login = await resolve_username(db, task.assignee_id)
      if login:
        await gh.add_assignees(owner, repo, snap.number, [login])
        result.step("assignees", "success")
      else:
        result.step("assignees", "skipped", "assignee has no GitHub username")
    except GitHubApiError as e:
      logger.warning("Assigning issue #%s failed: %s", snap.number, e.message)
      result.step("assignees", "failed", e.message)

  await _sync_project(gh, board, task, result)
  _finish(result)
  task.github_last_sync_at = utcnow()
  await _record(db, task, "task.github.created", result, TaskOrigin.INTERNAL)
  return result


async def push_task_state_in_background(task_id: str, origin: TaskOrigin = TaskOrigin.INTERNAL) -> None:
  async with SessionLocal() as db:
    try:
      result = await push_task_state(db, task_id, origin=origin)
      await db.commit()
      logger.info("GitHub push for task %s: %s (%s)", task_id, result.outcome.value, result.reason or "ok")
    except Exception:
      # Sync is best effort; the task change already committed.
      logger.exception("GitHub push for task %s crashed", task_id)
      await db.rollback()


async def create_issue_in_background(task_id: str) -> None:
  async with SessionLocal() as db:
    try:
      result = await create_issue_for_task(db, task_id)
      await db.commit()
      logger.info("GitHub issue creation for task %s: %s (%s)", task_id, result.outcome.value, result.reason or "ok")
    except Exception:
      logger.exception("GitHub issue creation for task %s crashed", task_id)
      await db.rollback()


def after_task_change(background_tasks: BackgroundTasks, task_id: str, origin: TaskOrigin = TaskOrigin.INTERNAL) -> bool:
  """Schedule the outbound push for a committed task change.

  Changes imported from GitHub are never pushed back.
  """
  if origin == TaskOrigin.IMPORTED:
    return False
  background_tasks.add_task(push_task_state_in_background, task_id, origin)
  return True


def after_task_created(background_tasks: BackgroundTasks, task_id: str) -> None:
  background_tasks.add_task(create_issue_in_background, task_id)
