from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from collabtask import validation as v
from collabtask.access import Actor, require_project_role
from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, WriteResult
from collabtask.concurrency.tokens import Wildcard
from collabtask.models import Lane, Project, ProjectRole, new_id
from collabtask.realtime.events import BoardEvent, LaneCreated, LaneDeleted, LaneUpdated
from collabtask.realtime.hub import Notifier, emit_after_commit, hub
from collabtask.services.common import clamp, commit, gateway, load, place, sibling_count, write_timeout


def _updated(l: Lane) -> BoardEvent:
  return BoardEvent.of(l.project_id, LaneUpdated(lane_id=l.id, name=l.name, position=l.position))


async def _authorize_lane(db: AsyncSession, actor: Actor, lane_id: str) -> Lane | None:
  l = await load(db, Lane, lane_id)
  if l is not None:
    await require_project_role(db, actor, l.project_id, ProjectRole.MEMBER)
  return l


async def create_lane(
  db: AsyncSession,
  actor: Actor,
  project_id: str,
  name: str,
  position: int | None = None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.CREATE, None, v.collect(v.lane_name(name), v.non_negative(position, "position")))
  project_present = await load(db, Project, project_id) is not None
  count = 0
  if project_present:
    await require_project_role(db, actor, project_id, ProjectRole.MEMBER)
    count = await sibling_count(db, Lane, Lane.project_id, project_id)
  index = count if position is None else min(position, count)
  l = Lane(id=new_id(), project_id=project_id, name=name.strip(), position=index)
  result = await pipeline.create(gateway(db, Lane), l, parent_present=project_present, timeout=write_timeout())
  if not result.succeeded:
    return result
  if index < count:
    await place(db, Lane, Lane.project_id, project_id, l, index)
  event = BoardEvent.of(project_id, LaneCreated(lane_id=l.id, name=l.name, position=l.position))
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def rename_lane(
  db: AsyncSession,
  actor: Actor,
  lane_id: str,
  supplied: bytes | Wildcard | None,
  name: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, v.lane_name(name))
  await _authorize_lane(db, actor, lane_id)
  clean = name.strip()

  def plan(l: Lane) -> dict:
    return {} if l.name == clean else {"name": clean}

  result = await pipeline.update(gateway(db, Lane), lane_id, supplied, plan, timeout=write_timeout())
  if result.succeeded:
    event = _updated(result.record)
    await commit(db)
    emit_after_commit(notifier, event)
  return result


async def reorder_lane(
  db: AsyncSession,
  actor: Actor,
  lane_id: str,
  supplied: bytes | Wildcard | None,
  position: int,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, v.non_negative(position, "position"))
  await _authorize_lane(db, actor, lane_id)
  target: dict[str, int] = {}

  async def plan(l: Lane) -> dict:
    target["index"] = clamp(position, await sibling_count(db, Lane, Lane.project_id, l.project_id))
    return {} if l.position == target["index"] else {"position": target["index"]}

  result = await pipeline.update(gateway(db, Lane), lane_id, supplied, plan, timeout=write_timeout())
  if result.succeeded:
    l: Lane = result.record
    await place(db, Lane, Lane.project_id, l.project_id, l, target["index"])
    event = _updated(l)
    await commit(db)
    emit_after_commit(notifier, event)
  return result


async def delete_lane(
  db: AsyncSession,
  actor: Actor,
  lane_id: str,
  supplied: bytes | Wildcard | None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.DELETE, supplied)
  await _authorize_lane(db, actor, lane_id)
  result = await pipeline.delete(gateway(db, Lane), lane_id, supplied, timeout=write_timeout())
  if result.succeeded:
    l: Lane = result.record
    event = BoardEvent.of(l.project_id, LaneDeleted(lane_id=l.id))
    await commit(db)
    emit_after_commit(notifier, event)
  return result
