from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasklane.deps import get_db
from tasklane.models import AuditEvent
from tasklane.schemas import AuditOut

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditOut])
async def list_audit(
  boardId: str | None = None,
  taskId: str | None = None,
  eventType: str | None = None,
  limit: int = 200,
  db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
  lim = max(1, min(500, int(limit)))
  q = select(AuditEvent).order_by(AuditEvent.created_at.desc()).limit(lim)
  if boardId:
    q = q.where(AuditEvent.board_id == boardId)
  if taskId:
    q = q.where(AuditEvent.task_id == taskId)
  if eventType:
    q = q.where(AuditEvent.event_type == eventType)
  res = await db.execute(q)
  out = []
  for ev in res.scalars().all():
    out.append(
      AuditOut(
        id=ev.id,
        boardId=ev.board_id,
        taskId=ev.task_id,
        actorId=ev.actor_id,
        eventType=ev.event_type,
        entityType=ev.entity_type,
        entityId=ev.entity_id,
        payload=ev.payload,
        createdAt=ev.created_at,
      )
    )
  return out
