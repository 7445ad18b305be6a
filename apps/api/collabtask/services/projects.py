from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from collabtask import validation as v
from collabtask.access import Actor, require_project_role
from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, WriteResult
from collabtask.concurrency.tokens import Wildcard, new_version_token
from collabtask.models import Project, ProjectMember, ProjectRole, new_id
from collabtask.realtime.events import BoardEvent, ProjectDeleted, ProjectUpdated
from collabtask.realtime.hub import Notifier, emit_after_commit, hub
from collabtask.services.common import commit, gateway, load, write_timeout


async def create_project(db: AsyncSession, actor: Actor, name: str) -> WriteResult:
  violations = v.project_name(name)
  pipeline.precheck(MutationKind.CREATE, None, violations)
  clean = name.strip()
  p = Project(id=new_id(), name=clean, slug=v.slugify(clean), owner_id=actor.user_id)
  result = await pipeline.create(gateway(db, Project), p, timeout=write_timeout())
  if not result.succeeded:
    return result
  # The creator becomes the owning member in the same transaction.
  db.add(
    ProjectMember(
      project_id=p.id,
      user_id=actor.user_id,
      role=ProjectRole.OWNER.value,
      row_version=new_version_token(),
    )
  )
  await commit(db)
  return result


async def rename_project(
  db: AsyncSession,
  actor: Actor,
  project_id: str,
  supplied: bytes | Wildcard | None,
  name: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  violations = v.project_name(name)
  pipeline.precheck(MutationKind.UPDATE, supplied, violations)
  if await load(db, Project, project_id) is not None:
    await require_project_role(db, actor, project_id, ProjectRole.ADMIN)
  clean = (name or "").strip()

  def plan(p: Project) -> dict:
    if p.name == clean:
      return {}
    return {"name": clean, "slug": v.slugify(clean)}

  result = await pipeline.update(gateway(db, Project), project_id, supplied, plan, timeout=write_timeout())
  if result.succeeded:
    p: Project = result.record
    await commit(db)
    emit_after_commit(notifier, BoardEvent.of(project_id, ProjectUpdated(name=p.name, slug=p.slug)))
  return result


async def delete_project(
  db: AsyncSession,
  actor: Actor,
  project_id: str,
  supplied: bytes | Wildcard | None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.DELETE, supplied)
  if await load(db, Project, project_id) is not None:
    await require_project_role(db, actor, project_id, ProjectRole.OWNER)
  result = await pipeline.delete(gateway(db, Project), project_id, supplied, timeout=write_timeout())
  if result.succeeded:
    await commit(db)
    emit_after_commit(notifier, BoardEvent.of(project_id, ProjectDeleted(project_id=project_id)))
  return result
