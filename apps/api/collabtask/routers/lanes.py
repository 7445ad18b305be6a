from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor, require_project_role
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import encode_token, etag_for
from collabtask.deps import get_current_actor, get_db, reject_if_match, supplied_version
from collabtask.models import BoardColumn, Lane, Project, ProjectRole
from collabtask.schemas import ColumnCreateIn, ColumnOut, LaneCreateIn, LaneOut, RenameIn, ReorderIn, VersionedIn
from collabtask.services.columns import create_column
from collabtask.services.lanes import create_lane, delete_lane, rename_lane, reorder_lane

router = APIRouter(tags=["lanes"])


def _lane_out(l: Lane) -> LaneOut:
  return LaneOut(id=l.id, projectId=l.project_id, name=l.name, position=l.position, rowVersion=encode_token(l.row_version))


def _column_out(c: BoardColumn) -> ColumnOut:
  return ColumnOut(
    id=c.id,
    projectId=c.project_id,
    laneId=c.lane_id,
    name=c.name,
    position=c.position,
    rowVersion=encode_token(c.row_version),
  )


async def _readable_lane(db: AsyncSession, actor: Actor, lane_id: str) -> Lane:
  l = await db.get(Lane, lane_id)
  if not l:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lane not found")
  await require_project_role(db, actor, l.project_id, ProjectRole.READER)
  return l


@router.get("/projects/{project_id}/lanes", response_model=list[LaneOut])
async def list_lanes(
  project_id: str,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> list[LaneOut]:
  if not await db.get(Project, project_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
  await require_project_role(db, actor, project_id, ProjectRole.READER)
  res = await db.execute(select(Lane).where(Lane.project_id == project_id).order_by(Lane.position.asc()))
  return [_lane_out(l) for l in res.scalars().all()]


@router.post("/projects/{project_id}/lanes", dependencies=[Depends(reject_if_match)])
async def create(
  project_id: str,
  payload: LaneCreateIn,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  result = await create_lane(db, actor, project_id, payload.name, payload.position)
  if not result.succeeded:
    return to_http(result)
  l: Lane = result.record
  return to_http(result, body=_lane_out(l), location=f"/lanes/{l.id}")


@router.get("/lanes/{lane_id}", response_model=LaneOut)
async def get_lane(
  lane_id: str,
  response: Response,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> LaneOut:
  l = await _readable_lane(db, actor, lane_id)
  response.headers["ETag"] = etag_for(l.row_version)
  return _lane_out(l)


@router.patch("/lanes/{lane_id}")
async def rename(
  lane_id: str,
  payload: RenameIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await rename_lane(db, actor, lane_id, supplied, payload.name))


@router.put("/lanes/{lane_id}/position")
async def reorder(
  lane_id: str,
  payload: ReorderIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await reorder_lane(db, actor, lane_id, supplied, payload.position))


@router.delete("/lanes/{lane_id}")
async def remove(
  lane_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await delete_lane(db, actor, lane_id, supplied))


@router.get("/lanes/{lane_id}/columns", response_model=list[ColumnOut])
async def list_columns(
  lane_id: str,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> list[ColumnOut]:
  await _readable_lane(db, actor, lane_id)
  res = await db.execute(select(BoardColumn).where(BoardColumn.lane_id == lane_id).order_by(BoardColumn.position.asc()))
  return [_column_out(c) for c in res.scalars().all()]


@router.post("/lanes/{lane_id}/columns", dependencies=[Depends(reject_if_match)])
async def create_in_lane(
  lane_id: str,
  payload: ColumnCreateIn,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  result = await create_column(db, actor, lane_id, payload.name, payload.position)
  if not result.succeeded:
    return to_http(result)
  c: BoardColumn = result.record
  return to_http(result, body=_column_out(c), location=f"/columns/{c.id}")
