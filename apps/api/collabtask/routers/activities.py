from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor
from collabtask.deps import get_current_actor, get_db
from collabtask.models import TaskActivity, as_utc
from collabtask.routers.tasks import readable_task
from collabtask.schemas import ActivityOut

router = APIRouter(tags=["activities"])


def _activity_out(a: TaskActivity) -> ActivityOut:
  return ActivityOut(
    id=a.id,
    taskId=a.task_id,
    actorId=a.actor_id,
    type=a.type,
    payload=a.payload or {},
    createdAt=as_utc(a.created_at),
  )


@router.get("/tasks/{task_id}/activities", response_model=list[ActivityOut])
async def list_activities(
  task_id: str,
  limit: int = 100,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> list[ActivityOut]:
  await readable_task(db, actor, task_id)
  limit = max(1, min(limit, 500))
  res = await db.execute(
    select(TaskActivity)
    .where(TaskActivity.task_id == task_id)
    .order_by(TaskActivity.created_at.desc(), TaskActivity.id.desc())
    .limit(limit)
  )
  return [_activity_out(a) for a in res.scalars().all()]
