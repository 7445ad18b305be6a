from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.models import TaskActivity, TaskActivityType, new_id


async def record_activity(
  db: AsyncSession,
  *,
  task_id: str,
  actor_id: str | None,
  activity_type: TaskActivityType,
  payload: dict[str, Any] | None = None,
) -> TaskActivity:
  safe_payload = jsonable_encoder(payload or {})
  act = TaskActivity(
    id=new_id(),
    task_id=task_id,
    actor_id=actor_id,
    type=activity_type.value,
    payload=safe_payload,
  )
  db.add(act)
  return act
