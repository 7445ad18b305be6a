from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor, require_project_role
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import encode_token, etag_for
from collabtask.deps import get_current_actor, get_db, reject_if_match, supplied_version
from collabtask.models import Project, ProjectMember, ProjectRole, as_utc
from collabtask.schemas import ProjectCreateIn, ProjectOut, ProjectRenameIn, VersionedIn
from collabtask.services.projects import create_project, delete_project, rename_project

router = APIRouter(prefix="/projects", tags=["projects"])


def _project_out(p: Project) -> ProjectOut:
  return ProjectOut(
    id=p.id,
    name=p.name,
    slug=p.slug,
    ownerId=p.owner_id,
    rowVersion=encode_token(p.row_version),
    createdAt=as_utc(p.created_at),
    updatedAt=as_utc(p.updated_at),
  )


@router.get("", response_model=list[ProjectOut])
async def list_projects(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)) -> list[ProjectOut]:
  res = await db.execute(
    select(Project)
    .join(ProjectMember, ProjectMember.project_id == Project.id)
    .where(ProjectMember.user_id == actor.user_id, ProjectMember.removed_at.is_(None))
    .order_by(Project.created_at.asc())
  )
  return [_project_out(p) for p in res.scalars().all()]


@router.post("", dependencies=[Depends(reject_if_match)])
async def create(
  payload: ProjectCreateIn,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  result = await create_project(db, actor, payload.name)
  if not result.succeeded:
    return to_http(result)
  p: Project = result.record
  return to_http(result, body=_project_out(p), location=f"/projects/{p.id}")


@router.get("/{project_id}", response_model=ProjectOut)
async def get_project(
  project_id: str,
  response: Response,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> ProjectOut:
  p = await db.get(Project, project_id)
  if not p:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
  await require_project_role(db, actor, project_id, ProjectRole.READER)
  response.headers["ETag"] = etag_for(p.row_version)
  return _project_out(p)


@router.patch("/{project_id}")
async def rename(
  project_id: str,
  payload: ProjectRenameIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await rename_project(db, actor, project_id, supplied, payload.name))


@router.delete("/{project_id}")
async def remove(
  project_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await delete_project(db, actor, project_id, supplied))
