from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask import validation as v
from collabtask.access import Actor, require_project_role
from collabtask.activity import record_activity
from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, MutationOutcome, WriteResult
from collabtask.concurrency.tokens import Wildcard
from collabtask.errors import FieldError
from collabtask.models import BoardColumn, ProjectRole, TaskActivityType, TaskItem, as_utc, new_id
from collabtask.persistence import storage_errors
from collabtask.realtime.events import BoardEvent, TaskCreated, TaskDeleted, TaskMoved, TaskUpdated
from collabtask.realtime.hub import Notifier, emit_after_commit, hub
from collabtask.services.common import commit, gateway, load, write_timeout

EDITABLE_FIELDS = ("title", "description", "due_date")


def _gateway(db: AsyncSession):
  return gateway(db, TaskItem, "TaskItem")


async def _authorize_task(db: AsyncSession, actor: Actor, task_id: str) -> TaskItem | None:
  t = await load(db, TaskItem, task_id)
  if t is not None:
    await require_project_role(db, actor, t.project_id, ProjectRole.MEMBER)
  return t


async def _next_sort_key(db: AsyncSession, column_id: str) -> float:
  with storage_errors("TaskItem", "max_sort_key"):
    res = await pipeline.bounded(
      db.execute(select(func.max(TaskItem.sort_key)).where(TaskItem.column_id == column_id)),
      write_timeout(),
    )
    current = res.scalar_one()
  return float(current) + 1.0 if current is not None else 0.0


def _edit_violations(fields: Mapping[str, Any]) -> list[FieldError]:
  unknown = [k for k in fields if k not in EDITABLE_FIELDS]
  errors = [FieldError(k, "Field cannot be edited.") for k in unknown]
  if "title" in fields:
    errors += v.task_title(fields["title"])
  if "description" in fields:
    errors += v.task_description(fields["description"])
  if "due_date" in fields:
    errors += v.due_date(fields["due_date"])
  return errors


async def create_task(
  db: AsyncSession,
  actor: Actor,
  column_id: str,
  *,
  title: str,
  description: str,
  due_date: datetime | None = None,
  sort_key: float | None = None,
  notifier: Notifier = hub,
) -> WriteResult:
  violations = v.collect(
    v.task_title(title),
    v.task_description(description),
    v.due_date(due_date),
    v.non_negative(sort_key, "sortKey"),
  )
  pipeline.precheck(MutationKind.CREATE, None, violations)
  column = await load(db, BoardColumn, column_id)
  if column is not None:
    await require_project_role(db, actor, column.project_id, ProjectRole.MEMBER)
    if sort_key is None:
      sort_key = await _next_sort_key(db, column_id)
  t = TaskItem(
    id=new_id(),
    project_id=column.project_id if column is not None else None,
    lane_id=column.lane_id if column is not None else None,
    column_id=column_id,
    title=title.strip(),
    description=description.strip(),
    due_date=due_date,
    sort_key=float(sort_key or 0.0),
  )
  result = await pipeline.create(_gateway(db), t, parent_present=column is not None, timeout=write_timeout())
  if not result.succeeded:
    return result
  await record_activity(
    db,
    task_id=t.id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.TASK_CREATED,
    payload={"title": t.title, "columnId": t.column_id, "laneId": t.lane_id},
  )
  event = BoardEvent.of(
    t.project_id,
    TaskCreated(
      task_id=t.id,
      column_id=t.column_id,
      lane_id=t.lane_id,
      title=t.title,
      description=t.description,
      sort_key=t.sort_key,
    ),
  )
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def edit_task(
  db: AsyncSession,
  actor: Actor,
  task_id: str,
  supplied: bytes | Wildcard | None,
  fields: Mapping[str, Any],
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, _edit_violations(fields))
  await _authorize_task(db, actor, task_id)
  wanted: dict[str, Any] = {}
  if "title" in fields:
    wanted["title"] = fields["title"].strip()
  if "description" in fields:
    wanted["description"] = fields["description"].strip()
  if "due_date" in fields:
    wanted["due_date"] = as_utc(fields["due_date"])

  applied: dict[str, Any] = {}

  def plan(t: TaskItem) -> dict:
    current = {"title": t.title, "description": t.description, "due_date": as_utc(t.due_date)}
    applied.update({k: val for k, val in wanted.items() if current[k] != val})
    return dict(applied)

  result = await pipeline.update(_gateway(db), task_id, supplied, plan, timeout=write_timeout())
  if not result.succeeded:
    return result
  t: TaskItem = result.record
  changed = sorted(applied)
  await record_activity(
    db,
    task_id=t.id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.TASK_EDITED,
    payload={"fields": changed, "title": t.title},
  )
  event = BoardEvent.of(
    t.project_id,
    TaskUpdated(
      task_id=t.id,
      new_title=applied.get("title"),
      new_description=applied.get("description"),
      new_due_date=applied.get("due_date"),
    ),
  )
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def move_task(
  db: AsyncSession,
  actor: Actor,
  task_id: str,
  supplied: bytes | Wildcard | None,
  *,
  lane_id: str,
  column_id: str,
  sort_key: float,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, v.non_negative(sort_key, "sortKey"))
  await _authorize_task(db, actor, task_id)
  origin: dict[str, str] = {}

  async def plan(t: TaskItem):
    target = await load(db, BoardColumn, column_id)
    if target is None:
      return MutationOutcome.NOT_FOUND
    # Tasks never leave their project, and a column only lives in its own lane.
    if target.project_id != t.project_id or target.lane_id != lane_id:
      return MutationOutcome.CONFLICT
    if t.lane_id == lane_id and t.column_id == column_id and t.sort_key == float(sort_key):
      return {}
    origin.update(lane_id=t.lane_id, column_id=t.column_id)
    return {"lane_id": lane_id, "column_id": column_id, "sort_key": float(sort_key)}

  result = await pipeline.update(_gateway(db), task_id, supplied, plan, timeout=write_timeout())
  if not result.succeeded:
    return result
  t: TaskItem = result.record
  await record_activity(
    db,
    task_id=t.id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.TASK_MOVED,
    payload={
      "fromLaneId": origin["lane_id"],
      "fromColumnId": origin["column_id"],
      "toLaneId": t.lane_id,
      "toColumnId": t.column_id,
      "sortKey": t.sort_key,
    },
  )
  event = BoardEvent.of(
    t.project_id,
    TaskMoved(
      task_id=t.id,
      from_lane_id=origin["lane_id"],
      from_column_id=origin["column_id"],
      to_lane_id=t.lane_id,
      to_column_id=t.column_id,
      sort_key=t.sort_key,
    ),
  )
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def delete_task(
  db: AsyncSession,
  actor: Actor,
  task_id: str,
  supplied: bytes | Wildcard | None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.DELETE, supplied)
  await _authorize_task(db, actor, task_id)
  result = await pipeline.delete(_gateway(db), task_id, supplied, timeout=write_timeout())
  if result.succeeded:
    t: TaskItem = result.record
    event = BoardEvent.of(t.project_id, TaskDeleted(task_id=t.id))
    await commit(db)
    emit_after_commit(notifier, event)
  return result
