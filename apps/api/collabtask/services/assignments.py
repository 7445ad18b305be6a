from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask import validation as v
from collabtask.access import Actor, require_project_role
from collabtask.activity import record_activity
from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, MutationOutcome, WriteResult
from collabtask.concurrency.tokens import Wildcard
from collabtask.models import ProjectMember, ProjectRole, TaskActivityType, TaskAssignment, TaskItem, TaskRole
from collabtask.persistence import storage_errors
from collabtask.realtime.events import AssignmentCreated, AssignmentRemoved, AssignmentUpdated, BoardEvent
from collabtask.realtime.hub import Notifier, emit_after_commit, hub
from collabtask.services.common import commit, gateway, load, write_timeout


def _gateway(db: AsyncSession):
  return gateway(db, TaskAssignment)


async def _authorize_task(db: AsyncSession, actor: Actor, task_id: str) -> TaskItem | None:
  t = await load(db, TaskItem, task_id)
  if t is not None:
    await require_project_role(db, actor, t.project_id, ProjectRole.MEMBER)
  return t


async def _other_owner_exists(db: AsyncSession, task_id: str, user_id: str) -> bool:
  with storage_errors("TaskAssignment", "owner_lookup"):
    res = await pipeline.bounded(
      db.execute(
        select(TaskAssignment.user_id).where(
          TaskAssignment.task_id == task_id,
          TaskAssignment.role == TaskRole.OWNER.value,
          TaskAssignment.user_id != user_id,
        )
      ),
      write_timeout(),
    )
    return res.first() is not None


async def _is_active_member(db: AsyncSession, project_id: str, user_id: str) -> bool:
  m = await load(db, ProjectMember, (project_id, user_id))
  return m is not None and m.removed_at is None


async def assign(
  db: AsyncSession,
  actor: Actor,
  task_id: str,
  user_id: str,
  role: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.CREATE, None, v.enum_value(role, TaskRole, "role"))
  task = await _authorize_task(db, actor, task_id)
  gw = _gateway(db)
  a = TaskAssignment(task_id=task_id, user_id=user_id, role=role)
  if task is not None:
    # Only active project members can hold a task, and a task has at most one owner.
    if not await _is_active_member(db, task.project_id, user_id):
      return pipeline.reject(gw, MutationKind.CREATE, (task_id, user_id), MutationOutcome.CONFLICT)
    if role == TaskRole.OWNER.value and await _other_owner_exists(db, task_id, user_id):
      return pipeline.reject(gw, MutationKind.CREATE, (task_id, user_id), MutationOutcome.CONFLICT)
  result = await pipeline.create(gw, a, parent_present=task is not None, timeout=write_timeout())
  if not result.succeeded:
    return result
  await record_activity(
    db,
    task_id=task_id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.ASSIGNMENT_CREATED,
    payload={"userId": user_id, "role": role},
  )
  event = BoardEvent.of(task.project_id, AssignmentCreated(task_id=task_id, user_id=user_id, role=role))
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def change_assignment_role(
  db: AsyncSession,
  actor: Actor,
  task_id: str,
  user_id: str,
  supplied: bytes | Wildcard | None,
  role: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, v.enum_value(role, TaskRole, "role"))
  task = await _authorize_task(db, actor, task_id)
  previous: dict[str, str] = {}

  async def plan(a: TaskAssignment):
    if a.role == role:
      return {}
    if role == TaskRole.OWNER.value and await _other_owner_exists(db, task_id, user_id):
      return MutationOutcome.CONFLICT
    previous["role"] = a.role
    return {"role": role}

  result = await pipeline.update(_gateway(db), (task_id, user_id), supplied, plan, timeout=write_timeout())
  if not result.succeeded:
    return result
  await record_activity(
    db,
    task_id=task_id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.ASSIGNMENT_ROLE_CHANGED,
    payload={"userId": user_id, "oldRole": previous["role"], "newRole": role},
  )
  event = BoardEvent.of(task.project_id, AssignmentUpdated(task_id=task_id, user_id=user_id, role=role))
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def unassign(
  db: AsyncSession,
  actor: Actor,
  task_id: str,
  user_id: str,
  supplied: bytes | Wildcard | None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.DELETE, supplied)
  task = await _authorize_task(db, actor, task_id)
  result = await pipeline.delete(_gateway(db), (task_id, user_id), supplied, timeout=write_timeout())
  if not result.succeeded:
    return result
  await record_activity(
    db,
    task_id=task_id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.ASSIGNMENT_REMOVED,
    payload={"userId": user_id},
  )
  event = BoardEvent.of(task.project_id, AssignmentRemoved(task_id=task_id, user_id=user_id))
  await commit(db)
  emit_after_commit(notifier, event)
  return result
