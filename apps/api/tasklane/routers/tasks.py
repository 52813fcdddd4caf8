from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasklane.audit import write_audit
from tasklane.deps import get_board_or_404, get_db, get_task_or_404
from tasklane.github.outbound import TaskOrigin, after_task_change, after_task_created, push_task_state
from tasklane.models import Board, BoardStatusColumn, Member, Task
from tasklane.schemas import SyncResultOut, TaskCreateIn, TaskMoveIn, TaskOut, TaskUpdateIn

router = APIRouter(tags=["tasks"])


def _task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    boardId=t.board_id,
    statusColumnId=t.status_column_id,
    status=t.status,
    title=t.title,
    description=t.description,
    assigneeId=t.assignee_id,
    githubIssueNumber=t.github_issue_number,
    githubUpdatedAt=t.github_updated_at,
    githubLastSyncAt=t.github_last_sync_at,
    orderIndex=t.order_index,
    version=t.version,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


async def _validate_assignee(board: Board, assignee_id: str | None, db: AsyncSession) -> None:
  if not assignee_id:
    return
  res = await db.execute(select(Member).where(Member.id == assignee_id, Member.organization_id == board.organization_id))
  if not res.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assignee is not a member of this organization")


async def _column_by_id(board_id: str, column_id: str, db: AsyncSession) -> BoardStatusColumn:
  res = await db.execute(select(BoardStatusColumn).where(BoardStatusColumn.id == column_id))
  col = res.scalar_one_or_none()
  if not col or col.board_id != board_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid statusColumnId")
  return col


async def _column_for_status(board_id: str, status_value: str, db: AsyncSession) -> BoardStatusColumn | None:
  res = await db.execute(
    select(BoardStatusColumn)
    .where(BoardStatusColumn.board_id == board_id, BoardStatusColumn.status == status_value)
    .order_by(BoardStatusColumn.position.asc())
    .limit(1)
  )
  return res.scalar_one_or_none()


@router.get("/boards/{board_id}/tasks", response_model=list[TaskOut])
async def list_tasks(board_id: str, db: AsyncSession = Depends(get_db)) -> list[TaskOut]:
  await get_board_or_404(db, board_id)
  res = await db.execute(select(Task).where(Task.board_id == board_id).order_by(Task.order_index.asc(), Task.created_at.asc()))
  return [_task_out(t) for t in res.scalars().all()]


@router.post("/boards/{board_id}/tasks", response_model=TaskOut)
async def create_task(
  board_id: str,
  payload: TaskCreateIn,
  background_tasks: BackgroundTasks,
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  board = await get_board_or_404(db, board_id)
  await _validate_assignee(board, payload.assigneeId, db)

  if payload.statusColumnId:
    col = await _column_by_id(board_id, payload.statusColumnId, db)
    status_value = col.status
  else:
    status_value = payload.status
    col = await _column_for_status(board_id, status_value, db)

  ores = await db.execute(select(func.max(Task.order_index)).where(Task.board_id == board_id))
  max_order = ores.scalar_one()
  t = Task(
    board_id=board_id,
    status_column_id=col.id if col else None,
    status=status_value,
    title=payload.title,
    description=payload.description,
    assignee_id=payload.assigneeId,
    order_index=(max_order + 1) if max_order is not None else 0,
    version=0,
  )
  db.add(t)
  await db.flush()
  await write_audit(
    db,
    event_type="task.created",
    entity_type="Task",
    entity_id=t.id,
    board_id=board_id,
    task_id=t.id,
    payload={"title": t.title, "status": t.status},
  )
  await db.commit()

  if board.github_sync_active():
    after_task_created(background_tasks, t.id)
  return _task_out(t)


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, db: AsyncSession = Depends(get_db)) -> TaskOut:
  return _task_out(await get_task_or_404(db, task_id))


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  background_tasks: BackgroundTasks,
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  if t.version != payload.version:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Version conflict")
  board = await get_board_or_404(db, t.board_id)

  fields_set = payload.model_fields_set
  if "assigneeId" in fields_set:
    await _validate_assignee(board, payload.assigneeId, db)

  changed: dict = {}
  for model_attr, field_name in (("title", "title"), ("description", "description"), ("assignee_id", "assigneeId")):
    if field_name in fields_set:
      val = getattr(payload, field_name)
      if field_name == "title" and not val:
        continue
      setattr(t, model_attr, val)
      changed[field_name] = val[:500] if isinstance(val, str) else val

  if "status" in fields_set and payload.status and payload.status != t.status:
    t.status = payload.status
    col = await _column_for_status(t.board_id, payload.status, db)
    if col:
      t.status_column_id = col.id
    changed["status"] = payload.status

  t.version += 1
  await write_audit(
    db,
    event_type="task.updated",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    payload={"version": t.version, "changed": list(changed.keys()), "fields": changed},
  )
  await db.commit()
  after_task_change(background_tasks, t.id, TaskOrigin.INTERNAL)
  return _task_out(t)


@router.post("/tasks/{task_id}/move", response_model=TaskOut)
async def move_task(
  task_id: str,
  payload: TaskMoveIn,
  background_tasks: BackgroundTasks,
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await get_task_or_404(db, task_id)
  if t.version != payload.version:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Version conflict")
  col = await _column_by_id(t.board_id, payload.statusColumnId, db)

  from_column = t.status_column_id
  from_status = t.status
  t.status_column_id = col.id
  t.status = col.status
  t.version += 1
  await write_audit(
    db,
    event_type="task.moved",
    entity_type="Task",
    entity_id=t.id,
    board_id=t.board_id,
    task_id=t.id,
    payload={"fromColumnId": from_column, "toColumnId": col.id, "fromStatus": from_status, "toStatus": col.status},
  )
  await db.commit()
  after_task_change(background_tasks, t.id, TaskOrigin.INTERNAL)
  return _task_out(t)


@router.delete("/tasks/{task_id}")
async def delete_task(task_id: str, db: AsyncSession = Depends(get_db)) -> dict:
  t = await get_task_or_404(db, task_id)
  # The mirrored issue, if any, is left on GitHub.
  await db.execute(delete(Task).where(Task.id == task_id))
  await write_audit(
    db,
    event_type="task.deleted",
    entity_type="Task",
    entity_id=task_id,
    board_id=t.board_id,
    payload={"title": t.title, "githubIssueNumber": t.github_issue_number},
  )
  await db.commit()
  return {"ok": True}


@router.post("/tasks/{task_id}/github/push", response_model=SyncResultOut)
async def push_task(task_id: str, db: AsyncSession = Depends(get_db)) -> SyncResultOut:
  await get_task_or_404(db, task_id)
  result = await push_task_state(db, task_id, origin=TaskOrigin.INTERNAL)
  await db.commit()
  return SyncResultOut(**result.to_dict())
