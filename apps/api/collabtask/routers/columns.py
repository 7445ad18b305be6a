from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor, require_project_role
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import etag_for
from collabtask.deps import get_current_actor, get_db, supplied_version
from collabtask.models import BoardColumn, ProjectRole
from collabtask.routers.lanes import _column_out
from collabtask.schemas import ColumnOut, RenameIn, ReorderIn, VersionedIn
from collabtask.services.columns import delete_column, rename_column, reorder_column

router = APIRouter(prefix="/columns", tags=["columns"])


@router.get("/{column_id}", response_model=ColumnOut)
async def get_column(
  column_id: str,
  response: Response,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> ColumnOut:
  c = await db.get(BoardColumn, column_id)
  if not c:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Column not found")
  await require_project_role(db, actor, c.project_id, ProjectRole.READER)
  response.headers["ETag"] = etag_for(c.row_version)
  return _column_out(c)


@router.patch("/{column_id}")
async def rename(
  column_id: str,
  payload: RenameIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await rename_column(db, actor, column_id, supplied, payload.name))


@router.put("/{column_id}/position")
async def reorder(
  column_id: str,
  payload: ReorderIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await reorder_column(db, actor, column_id, supplied, payload.position))


@router.delete("/{column_id}")
async def remove(
  column_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await delete_column(db, actor, column_id, supplied))
