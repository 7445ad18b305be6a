from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask import validation as v
from collabtask.access import Actor, require_project_role
from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, MutationOutcome, WriteResult
from collabtask.concurrency.tokens import Wildcard
from collabtask.errors import FieldError
from collabtask.models import Project, ProjectMember, ProjectRole, User, utcnow
from collabtask.realtime.events import BoardEvent, MemberAdded, MemberUpdated
from collabtask.realtime.hub import Notifier, emit_after_commit, hub
from collabtask.services.common import commit, gateway, load, write_timeout


def _assignable_role(role: str, field: str = "role") -> list[FieldError]:
  errors = v.enum_value(role, ProjectRole, field)
  if not errors and role == ProjectRole.OWNER.value:
    errors.append(FieldError(field, "The owner role cannot be assigned."))
  return errors


def _updated_event(project_id: str, m: ProjectMember) -> BoardEvent:
  return BoardEvent.of(project_id, MemberUpdated(user_id=m.user_id, role=m.role, removed=m.removed_at is not None))


async def add_member(
  db: AsyncSession,
  actor: Actor,
  project_id: str,
  user_id: str,
  role: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.CREATE, None, _assignable_role(role))
  project_present = await load(db, Project, project_id) is not None
  if project_present:
    await require_project_role(db, actor, project_id, ProjectRole.ADMIN)
  user_present = await load(db, User, user_id) is not None
  m = ProjectMember(project_id=project_id, user_id=user_id, role=role)
  result = await pipeline.create(
    gateway(db, ProjectMember), m, parent_present=project_present and user_present, timeout=write_timeout()
  )
  if result.succeeded:
    await commit(db)
    emit_after_commit(notifier, BoardEvent.of(project_id, MemberAdded(user_id=user_id, role=role)))
  return result


async def _member_update(
  db: AsyncSession,
  actor: Actor,
  project_id: str,
  user_id: str,
  supplied: bytes | Wildcard | None,
  plan,
  *,
  notifier: Notifier,
  violations: list[FieldError] | None = None,
  allow_self: bool = False,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, violations or [])
  if await load(db, Project, project_id) is not None:
    if allow_self and actor.user_id == user_id:
      await require_project_role(db, actor, project_id, ProjectRole.READER)
    else:
      await require_project_role(db, actor, project_id, ProjectRole.ADMIN)
  result = await pipeline.update(
    gateway(db, ProjectMember), (project_id, user_id), supplied, plan, timeout=write_timeout()
  )
  if result.succeeded:
    m: ProjectMember = result.record
    event = _updated_event(project_id, m)
    await commit(db)
    emit_after_commit(notifier, event)
  return result


async def change_member_role(
  db: AsyncSession,
  actor: Actor,
  project_id: str,
  user_id: str,
  supplied: bytes | Wildcard | None,
  role: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  def plan(m: ProjectMember):
    if m.role == ProjectRole.OWNER.value:
      return MutationOutcome.CONFLICT
    return {} if m.role == role else {"role": role}

  return await _member_update(
    db, actor, project_id, user_id, supplied, plan, notifier=notifier, violations=_assignable_role(role)
  )


async def remove_member(
  db: AsyncSession,
  actor: Actor,
  project_id: str,
  user_id: str,
  supplied: bytes | Wildcard | None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  def plan(m: ProjectMember):
    if m.role == ProjectRole.OWNER.value:
      return MutationOutcome.CONFLICT
    return {} if m.removed_at is not None else {"removed_at": utcnow()}

  return await _member_update(db, actor, project_id, user_id, supplied, plan, notifier=notifier, allow_self=True)


async def restore_member(
  db: AsyncSession,
  actor: Actor,
  project_id: str,
  user_id: str,
  supplied: bytes | Wildcard | None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  if actor.user_id == user_id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot restore yourself")

  def plan(m: ProjectMember):
    return {} if m.removed_at is None else {"removed_at": None}

  return await _member_update(db, actor, project_id, user_id, supplied, plan, notifier=notifier)
