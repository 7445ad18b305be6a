from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Header, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import encode_token
from collabtask.deps import get_current_actor, get_db, reject_if_match, supplied_version
from collabtask.models import TaskAssignment
from collabtask.routers.tasks import readable_task
from collabtask.schemas import AssignmentCreateIn, AssignmentOut, AssignmentRoleIn, VersionedIn
from collabtask.services.assignments import assign, change_assignment_role, unassign

router = APIRouter(prefix="/tasks/{task_id}", tags=["assignments"])


def _assignment_out(a: TaskAssignment) -> AssignmentOut:
  return AssignmentOut(taskId=a.task_id, userId=a.user_id, role=a.role, rowVersion=encode_token(a.row_version))


@router.get("/assignments", response_model=list[AssignmentOut])
async def list_assignments(
  task_id: str,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> list[AssignmentOut]:
  await readable_task(db, actor, task_id)
  res = await db.execute(
    select(TaskAssignment).where(TaskAssignment.task_id == task_id).order_by(TaskAssignment.created_at.asc())
  )
  return [_assignment_out(a) for a in res.scalars().all()]


@router.post("/assignments", dependencies=[Depends(reject_if_match)])
async def create(
  task_id: str,
  payload: AssignmentCreateIn,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  result = await assign(db, actor, task_id, payload.userId, payload.role)
  if not result.succeeded:
    return to_http(result)
  a: TaskAssignment = result.record
  return to_http(result, body=_assignment_out(a), location=f"/tasks/{task_id}/assignments/{a.user_id}")


@router.patch("/assignments/{user_id}")
async def change_role(
  task_id: str,
  user_id: str,
  payload: AssignmentRoleIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await change_assignment_role(db, actor, task_id, user_id, supplied, payload.role))


@router.delete("/assignments/{user_id}")
async def remove(
  task_id: str,
  user_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await unassign(db, actor, task_id, user_id, supplied))

