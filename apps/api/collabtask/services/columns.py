from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from collabtask import validation as v
from collabtask.access import Actor, require_project_role
from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, WriteResult
from collabtask.concurrency.tokens import Wildcard
from collabtask.models import BoardColumn, Lane, ProjectRole, new_id
from collabtask.realtime.events import BoardEvent, ColumnCreated, ColumnDeleted, ColumnUpdated
from collabtask.realtime.hub import Notifier, emit_after_commit, hub
from collabtask.services.common import clamp, commit, gateway, load, place, sibling_count, write_timeout


def _updated(c: BoardColumn) -> BoardEvent:
  return BoardEvent.of(c.project_id, ColumnUpdated(column_id=c.id, lane_id=c.lane_id, name=c.name, position=c.position))


async def _authorize_column(db: AsyncSession, actor: Actor, column_id: str) -> None:
  c = await load(db, BoardColumn, column_id)
  if c is not None:
    await require_project_role(db, actor, c.project_id, ProjectRole.MEMBER)


async def create_column(
  db: AsyncSession,
  actor: Actor,
  lane_id: str,
  name: str,
  position: int | None = None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.CREATE, None, v.collect(v.column_name(name), v.non_negative(position, "position")))
  lane = await load(db, Lane, lane_id)
  count = 0
  if lane is not None:
    await require_project_role(db, actor, lane.project_id, ProjectRole.MEMBER)
    count = await sibling_count(db, BoardColumn, BoardColumn.lane_id, lane_id)
  index = count if position is None else min(position, count)
  c = BoardColumn(
    id=new_id(),
    project_id=lane.project_id if lane is not None else None,
    lane_id=lane_id,
    name=name.strip(),
    position=index,
  )
  result = await pipeline.create(
    gateway(db, BoardColumn, "Column"), c, parent_present=lane is not None, timeout=write_timeout()
  )
  if not result.succeeded:
    return result
  if index < count:
    await place(db, BoardColumn, BoardColumn.lane_id, lane_id, c, index)
  event = BoardEvent.of(c.project_id, ColumnCreated(column_id=c.id, lane_id=lane_id, name=c.name, position=c.position))
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def rename_column(
  db: AsyncSession,
  actor: Actor,
  column_id: str,
  supplied: bytes | Wildcard | None,
  name: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, v.column_name(name))
  await _authorize_column(db, actor, column_id)
  clean = name.strip()

  def plan(c: BoardColumn) -> dict:
    return {} if c.name == clean else {"name": clean}

  result = await pipeline.update(gateway(db, BoardColumn, "Column"), column_id, supplied, plan, timeout=write_timeout())
  if result.succeeded:
    event = _updated(result.record)
    await commit(db)
    emit_after_commit(notifier, event)
  return result


async def reorder_column(
  db: AsyncSession,
  actor: Actor,
  column_id: str,
  supplied: bytes | Wildcard | None,
  position: int,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, v.non_negative(position, "position"))
  await _authorize_column(db, actor, column_id)
  target: dict[str, int] = {}

  async def plan(c: BoardColumn) -> dict:
    target["index"] = clamp(position, await sibling_count(db, BoardColumn, BoardColumn.lane_id, c.lane_id))
    return {} if c.position == target["index"] else {"position": target["index"]}

  result = await pipeline.update(gateway(db, BoardColumn, "Column"), column_id, supplied, plan, timeout=write_timeout())
  if result.succeeded:
    c: BoardColumn = result.record
    await place(db, BoardColumn, BoardColumn.lane_id, c.lane_id, c, target["index"])
    event = _updated(c)
    await commit(db)
    emit_after_commit(notifier, event)
  return result


async def delete_column(
  db: AsyncSession,
  actor: Actor,
  column_id: str,
  supplied: bytes | Wildcard | None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.DELETE, supplied)
  await _authorize_column(db, actor, column_id)
  result = await pipeline.delete(gateway(db, BoardColumn, "Column"), column_id, supplied, timeout=write_timeout())
  if result.succeeded:
    c: BoardColumn = result.record
    event = BoardEvent.of(c.project_id, ColumnDeleted(column_id=c.id, lane_id=c.lane_id))
    await commit(db)
    emit_after_commit(notifier, event)
  return result
