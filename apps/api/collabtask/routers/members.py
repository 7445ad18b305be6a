from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor, require_project_role
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import encode_token
from collabtask.deps import get_current_actor, get_db, reject_if_match, supplied_version
from collabtask.models import Project, ProjectMember, ProjectRole, as_utc
from collabtask.schemas import MemberAddIn, MemberOut, MemberRoleIn, VersionedIn
from collabtask.services.members import add_member, change_member_role, remove_member, restore_member

router = APIRouter(prefix="/projects/{project_id}/members", tags=["members"])


def _member_out(m: ProjectMember) -> MemberOut:
  return MemberOut(
    projectId=m.project_id,
    userId=m.user_id,
    role=m.role,
    joinedAt=as_utc(m.joined_at),
    removedAt=as_utc(m.removed_at),
    rowVersion=encode_token(m.row_version),
  )


@router.get("", response_model=list[MemberOut])
async def list_members(
  project_id: str,
  include_removed: bool = False,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> list[MemberOut]:
  if not await db.get(Project, project_id):
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
  await require_project_role(db, actor, project_id, ProjectRole.READER)
  q = select(ProjectMember).where(ProjectMember.project_id == project_id)
  if not include_removed:
    q = q.where(ProjectMember.removed_at.is_(None))
  res = await db.execute(q.order_by(ProjectMember.joined_at.asc()))
  return [_member_out(m) for m in res.scalars().all()]


@router.post("", dependencies=[Depends(reject_if_match)])
async def add(
  project_id: str,
  payload: MemberAddIn,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  result = await add_member(db, actor, project_id, payload.userId, payload.role)
  if not result.succeeded:
    return to_http(result)
  m: ProjectMember = result.record
  return to_http(result, body=_member_out(m), location=f"/projects/{project_id}/members/{m.user_id}")


@router.patch("/{user_id}")
async def change_role(
  project_id: str,
  user_id: str,
  payload: MemberRoleIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await change_member_role(db, actor, project_id, user_id, supplied, payload.role))


@router.post("/{user_id}/remove")
async def remove(
  project_id: str,
  user_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await remove_member(db, actor, project_id, user_id, supplied))


@router.post("/{user_id}/restore")
async def restore(
  project_id: str,
  user_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await restore_member(db, actor, project_id, user_id, supplied))
