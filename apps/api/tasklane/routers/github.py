from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasklane.audit import write_audit
from tasklane.config import settings
from tasklane.deps import get_board_or_404, get_db
from tasklane.github.client import GitHubApiError, client_for_board, github_ping, split_repo_name
from tasklane.github.importer import import_issue, import_repository_issues
from tasklane.github.outbound import TaskOrigin, create_issue_for_task, push_task_state
from tasklane.github.payloads import IssueSnapshot, RepositoryRef, issue_operation
from tasklane.models import Board, InboundWebhookEvent, Task
from tasklane.schemas import (
  BoardGitHubOut,
  BoardGitHubUpdateIn,
  GitHubSyncIn,
  GitHubSyncOut,
  GitHubSyncTaskOut,
  SyncResultOut,
  WebhookEventOut,
  WebhookInboundOut,
)
from tasklane.security import GITHUB_SIGNATURE_HEADER, decrypt_integration_secret, encrypt_secret, token_hint, verify_github_signature

logger = logging.getLogger(__name__)

router = APIRouter(tags=["github"])

WEBHOOK_SOURCE = "github"


def _out(b: Board) -> BoardGitHubOut:
  return BoardGitHubOut(
    boardId=b.id,
    enabled=bool(b.github_sync_enabled),
    repoName=b.github_repo_name,
    projectId=b.github_project_id,
    tokenConfigured=bool(b.github_access_token_encrypted),
    tokenHint=b.github_token_hint or "",
    active=b.github_sync_active(),
  )


def _safe_headers(headers: dict[str, str]) -> dict[str, Any]:
  out: dict[str, Any] = {}
  for k, v in headers.items():
    lk = k.lower()
    if lk in ("authorization", "cookie", "set-cookie"):
      continue
    out[k] = v
  return out


@router.get("/boards/{board_id}/github", response_model=BoardGitHubOut)
async def get_board_github(board_id: str, db: AsyncSession = Depends(get_db)) -> BoardGitHubOut:
  return _out(await get_board_or_404(db, board_id))


@router.patch("/boards/{board_id}/github", response_model=BoardGitHubOut)
async def update_board_github(board_id: str, payload: BoardGitHubUpdateIn, db: AsyncSession = Depends(get_db)) -> BoardGitHubOut:
  b = await get_board_or_404(db, board_id)
  fields_set = payload.model_fields_set
  if "repoName" in fields_set:
    b.github_repo_name = payload.repoName
  if "projectId" in fields_set:
    b.github_project_id = payload.projectId
  if "accessToken" in fields_set:
    token = (payload.accessToken or "").strip()
    b.github_access_token_encrypted = encrypt_secret(token) if token else None
    b.github_token_hint = token_hint(token)
  if "enabled" in fields_set and payload.enabled is not None:
    b.github_sync_enabled = bool(payload.enabled)
  if b.github_sync_enabled and not (b.github_access_token_encrypted and b.github_repo_name):
    raise HTTPException(
      status_code=status.HTTP_400_BAD_REQUEST,
      detail="repoName and accessToken are required to enable GitHub sync",
    )
  await write_audit(
    db,
    event_type="board.github.updated",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    payload={
      "changed": sorted(k for k in fields_set if k != "accessToken") + (["accessToken"] if "accessToken" in fields_set else []),
      "enabled": b.github_sync_enabled,
      "repoName": b.github_repo_name,
      "projectId": b.github_project_id,
    },
  )
  await db.commit()
  return _out(b)


@router.post("/boards/{board_id}/github/test")
async def test_board_github(board_id: str, db: AsyncSession = Depends(get_db)) -> dict:
  b = await get_board_or_404(db, board_id)
  if not b.github_access_token_encrypted:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="GitHub access token not configured")
  token = decrypt_integration_secret(b.github_access_token_encrypted)
  try:
    result = await github_ping(base_url=settings.github_api_url, api_token=token)
  except Exception as e:
    await write_audit(
      db,
      event_type="board.github.test.error",
      entity_type="Board",
      entity_id=b.id,
      board_id=b.id,
      payload={"error": str(e)},
    )
    await db.commit()
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"GitHub test failed: {e}") from e
  await write_audit(
    db,
    event_type="board.github.test.ok",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    payload={"result": result},
  )
  await db.commit()
  return {"ok": True, "result": result}


@router.post("/github/sync", response_model=GitHubSyncOut)
async def sync_board(payload: GitHubSyncIn, db: AsyncSession = Depends(get_db)) -> GitHubSyncOut:
  b = await get_board_or_404(db, payload.boardId)
  if not b.github_sync_active():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="GitHub sync is not configured for this board")
  gh = client_for_board(b)
  out = GitHubSyncOut(boardId=b.id, direction=payload.direction)

  if payload.direction in ("to-github", "both"):
    res = await db.execute(select(Task).where(Task.board_id == b.id).order_by(Task.order_index.asc()))
    for t in res.scalars().all():
      if t.github_issue_number:
        r = await push_task_state(db, t.id, origin=TaskOrigin.INTERNAL, client=gh)
        out.pushed.append(GitHubSyncTaskOut(taskId=t.id, issueNumber=t.github_issue_number, result=SyncResultOut(**r.to_dict())))
      else:
        r = await create_issue_for_task(db, t.id, client=gh)
        out.created.append(GitHubSyncTaskOut(taskId=t.id, issueNumber=t.github_issue_number, result=SyncResultOut(**r.to_dict())))
    await db.commit()

  if payload.direction in ("from-github", "both"):
    tasks = await import_repository_issues(db, b.id, client=gh)
    out.imported = len(tasks)
    await db.commit()

  await write_audit(
    db,
    event_type="board.github.synced",
    entity_type="Board",
    entity_id=b.id,
    board_id=b.id,
    payload={"direction": payload.direction, "imported": out.imported, "pushed": len(out.pushed), "created": len(out.created)},
  )
  await db.commit()
  return out


async def _board_for_repository(db: AsyncSession, repo: RepositoryRef) -> Board | None:
  res = await db.execute(
    select(Board)
    .where(func.lower(Board.github_repo_name) == repo.full_name.lower(), Board.github_sync_enabled.is_(True))
    .order_by(Board.created_at.asc())
  )
  for b in res.scalars().all():
    if b.github_sync_active():
      return b
  return None


async def _board_for_project(db: AsyncSession, project_number: Any) -> Board | None:
  try:
    number = int(project_number)
  except (TypeError, ValueError):
    return None
  res = await db.execute(
    select(Board)
    .where(Board.github_project_id == number, Board.github_sync_enabled.is_(True))
    .order_by(Board.created_at.asc())
  )
  for b in res.scalars().all():
    if b.github_sync_active():
      return b
  return None


async def _process_github_event(db: AsyncSession, *, event: str, body: dict[str, Any]) -> dict[str, Any]:
  if event == "ping":
    return {"pong": True, "hookId": body.get("hook_id")}

  if event == "issues":
    action = body.get("action")
    op = issue_operation(action)
    if op is None:
      logger.info("Ignoring GitHub issues action %r", action)
      return {"ignored": True, "reason": f"Unsupported issues action: {action}"}
    try:
      repo = RepositoryRef.from_payload(body.get("repository") or {})
      snap = IssueSnapshot.from_payload(body.get("issue") or {})
    except ValueError as e:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    board = await _board_for_repository(db, repo)
    if not board:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No board syncs {repo.full_name}")
    task = await import_issue(db, body.get("issue") or {}, repo, board.id)
    return {"operation": op, "action": action, "taskId": task.id, "boardId": board.id, "issueNumber": snap.number}

  if event == "projects_v2_item":
    action = body.get("action")
    if action not in ("edited", "updated"):
      logger.info("Ignoring GitHub projects_v2_item action %r", action)
      return {"ignored": True, "reason": f"Unsupported projects_v2_item action: {action}"}
    item = body.get("projects_v2_item") or {}
    content = item.get("content") or {}
    if item.get("content_type", content.get("type")) != "Issue" or not content.get("number"):
      return {"ignored": True, "reason": "Project item is not an issue"}
    board = await _board_for_project(db, (item.get("project") or {}).get("number"))
    repo: RepositoryRef | None = None
    if body.get("repository"):
      try:
        repo = RepositoryRef.from_payload(body["repository"])
      except ValueError:
        repo = None
      if board is None and repo is not None:
        board = await _board_for_repository(db, repo)
    if not board:
      raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No board syncs this project item")
    if repo is None:
      owner, name = split_repo_name(board.github_repo_name or "")
      repo = RepositoryRef(owner=owner, name=name)
    # The item payload only names the issue; import_issue re-reads it in full.
    task = await import_issue(db, {"number": content["number"]}, repo, board.id)
    return {"operation": "update", "action": action, "taskId": task.id, "boardId": board.id, "issueNumber": task.github_issue_number}

  logger.info("Ignoring GitHub event %r", event)
  return {"ignored": True, "reason": f"Unsupported event: {event}"}


async def _record_failure(db: AsyncSession, event_id: str, error: str) -> None:
  ev = await db.get(InboundWebhookEvent, event_id)
  if ev is None:
    return
  ev.processed = True
  ev.processed_at = datetime.now(timezone.utc)
  ev.result = None
  ev.error = error
  await db.commit()


@router.post("/github/webhook", response_model=WebhookInboundOut)
async def github_webhook(request: Request, db: AsyncSession = Depends(get_db)) -> WebhookInboundOut:
  secret = (settings.github_webhook_secret or "").strip()
  if not secret:
    logger.error("GitHub webhook received but GITHUB_WEBHOOK_SECRET is not configured")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook secret not configured")
  raw = await request.body()
  if not verify_github_signature(secret, raw, request.headers.get(GITHUB_SIGNATURE_HEADER)):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")
  try:
    body = await request.json()
  except Exception:
    body = {}
  if not isinstance(body, dict):
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="JSON object body required")

  event = (request.headers.get("x-github-event") or "").strip()
  delivery = (request.headers.get("x-github-delivery") or "").strip() or None

  existing: InboundWebhookEvent | None = None
  if delivery:
    res = await db.execute(
      select(InboundWebhookEvent).where(
        InboundWebhookEvent.source == WEBHOOK_SOURCE, InboundWebhookEvent.idempotency_key == delivery
      )
    )
    existing = res.scalar_one_or_none()
    if existing and existing.processed and existing.result is not None and existing.error is None:
      return WebhookInboundOut(eventId=existing.id, idempotentReplay=True, result=existing.result)

  ev = existing or InboundWebhookEvent(
    source=WEBHOOK_SOURCE,
    event_type=event or None,
    idempotency_key=delivery,
    headers=_safe_headers(dict(request.headers)),
    body=body,
    received_at=datetime.now(timezone.utc),
    processed=False,
  )
  db.add(ev)
  # Keep the delivery on record even when processing rolls back.
  await db.commit()
  event_id = ev.id

  try:
    result = await _process_github_event(db, event=event, body=body)
    ev.processed = True
    ev.processed_at = datetime.now(timezone.utc)
    ev.result = result
    ev.error = None
    await db.commit()
  except HTTPException as e:
    await db.rollback()
    await _record_failure(db, event_id, str(e.detail))
    raise
  except GitHubApiError as e:
    await db.rollback()
    await _record_failure(db, event_id, e.message)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"GitHub request failed: {e.message}") from e
  except Exception as e:
    logger.exception("GitHub webhook %s (%s) failed", delivery, event)
    await db.rollback()
    await _record_failure(db, event_id, str(e))
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Webhook processing failed") from e

  # Imported writes never schedule a push back to GitHub.
  return WebhookInboundOut(eventId=event_id, idempotentReplay=False, result=result)


@router.get("/github/webhook/events", response_model=list[WebhookEventOut])
async def list_webhook_events(limit: int = 50, db: AsyncSession = Depends(get_db)) -> list[WebhookEventOut]:
  lim = max(1, min(200, int(limit)))
  res = await db.execute(
    select(InboundWebhookEvent)
    .where(InboundWebhookEvent.source == WEBHOOK_SOURCE)
    .order_by(InboundWebhookEvent.received_at.desc())
    .limit(lim)
  )
  out: list[WebhookEventOut] = []
  for ev in res.scalars().all():
    out.append(
      WebhookEventOut(
        id=ev.id,
        source=ev.source,
        eventType=ev.event_type,
        idempotencyKey=ev.idempotency_key,
        receivedAt=ev.received_at,
        processed=ev.processed,
        processedAt=ev.processed_at,
        result=ev.result,
        error=ev.error,
      )
    )
  return out
