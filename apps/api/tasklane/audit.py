from __future__ import annotations

import logging
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from tasklane.models import AuditEvent

logger = logging.getLogger(__name__)


async def write_audit(
  db: AsyncSession,
  *,
  event_type: str,
  entity_type: str,
  entity_id: str | None,
  board_id: str | None = None,
  task_id: str | None = None,
  actor_id: str | None = None,
  payload: dict[str, Any] | None = None,
) -> AuditEvent:
  """Stage an audit row in the caller's transaction (no commit)."""
  if task_id is None and entity_type == "Task":
    # Task history is queried by task id, including for deleted tasks.
    task_id = entity_id
  ev = AuditEvent(
    board_id=board_id,
    task_id=task_id,
    actor_id=actor_id,
    event_type=event_type,
    entity_type=entity_type,
    entity_id=entity_id,
    payload=jsonable_encoder(payload or {}),
  )
  db.add(ev)
  logger.debug("audit %s %s/%s", event_type, entity_type, entity_id)
  return ev
