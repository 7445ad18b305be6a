from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor, require_project_role
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import encode_token, etag_for
from collabtask.deps import get_current_actor, get_db, reject_if_match, supplied_version
from collabtask.models import BoardColumn, ProjectRole, TaskItem, as_utc
from collabtask.schemas import TaskCreateIn, TaskEditIn, TaskMoveIn, TaskOut, VersionedIn
from collabtask.services.tasks import create_task, delete_task, edit_task, move_task

router = APIRouter(tags=["tasks"])

# Request field -> column name for partial edits.
_EDIT_FIELDS = {"title": "title", "description": "description", "dueDate": "due_date"}


def _task_out(t: TaskItem) -> TaskOut:
  return TaskOut(
    id=t.id,
    projectId=t.project_id,
    laneId=t.lane_id,
    columnId=t.column_id,
    title=t.title,
    description=t.description,
    dueDate=as_utc(t.due_date),
    sortKey=t.sort_key,
    rowVersion=encode_token(t.row_version),
    createdAt=as_utc(t.created_at),
    updatedAt=as_utc(t.updated_at),
  )


async def readable_task(db: AsyncSession, actor: Actor, task_id: str) -> TaskItem:
  t = await db.get(TaskItem, task_id)
  if not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
  await require_project_role(db, actor, t.project_id, ProjectRole.READER)
  return t


@router.get("/columns/{column_id}/tasks", response_model=list[TaskOut])
async def list_tasks(
  column_id: str,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> list[TaskOut]:
  c = await db.get(BoardColumn, column_id)
  if not c:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Column not found")
  await require_project_role(db, actor, c.project_id, ProjectRole.READER)
  res = await db.execute(
    select(TaskItem).where(TaskItem.column_id == column_id).order_by(TaskItem.sort_key.asc(), TaskItem.created_at.asc())
  )
  return [_task_out(t) for t in res.scalars().all()]


@router.post("/columns/{column_id}/tasks", dependencies=[Depends(reject_if_match)])
async def create(
  column_id: str,
  payload: TaskCreateIn,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  result = await create_task(
    db,
    actor,
    column_id,
    title=payload.title,
    description=payload.description,
    due_date=payload.dueDate,
    sort_key=payload.sortKey,
  )
  if not result.succeeded:
    return to_http(result)
  t: TaskItem = result.record
  return to_http(result, body=_task_out(t), location=f"/tasks/{t.id}")


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(
  task_id: str,
  response: Response,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> TaskOut:
  t = await readable_task(db, actor, task_id)
  response.headers["ETag"] = etag_for(t.row_version)
  return _task_out(t)


@router.patch("/tasks/{task_id}")
async def edit(
  task_id: str,
  payload: TaskEditIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  fields: dict[str, Any] = {}
  for name in payload.model_fields_set:
    if name in _EDIT_FIELDS:
      fields[_EDIT_FIELDS[name]] = getattr(payload, name)
  return to_http(await edit_task(db, actor, task_id, supplied, fields))


@router.put("/tasks/{task_id}/move")
async def move(
  task_id: str,
  payload: TaskMoveIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  result = await move_task(
    db, actor, task_id, supplied, lane_id=payload.laneId, column_id=payload.columnId, sort_key=payload.sortKey
  )
  return to_http(result)


@router.delete("/tasks/{task_id}")
async def remove(
  task_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await delete_task(db, actor, task_id, supplied))
