from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor, require_project_role
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import encode_token, etag_for
from collabtask.deps import get_current_actor, get_db, reject_if_match, supplied_version
from collabtask.models import ProjectRole, TaskItem, TaskNote, as_utc
from collabtask.routers.tasks import readable_task
from collabtask.schemas import NoteCreateIn, NoteEditIn, NoteOut, VersionedIn
from collabtask.services.notes import add_note, delete_note, edit_note

router = APIRouter(tags=["notes"])


def _note_out(n: TaskNote) -> NoteOut:
  return NoteOut(
    id=n.id,
    taskId=n.task_id,
    userId=n.user_id,
    content=n.content,
    rowVersion=encode_token(n.row_version),
    createdAt=as_utc(n.created_at),
    updatedAt=as_utc(n.updated_at),
  )


@router.get("/tasks/{task_id}/notes", response_model=list[NoteOut])
async def list_notes(
  task_id: str,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> list[NoteOut]:
  await readable_task(db, actor, task_id)
  res = await db.execute(select(TaskNote).where(TaskNote.task_id == task_id).order_by(TaskNote.created_at.asc()))
  return [_note_out(n) for n in res.scalars().all()]


@router.post("/tasks/{task_id}/notes", dependencies=[Depends(reject_if_match)])
async def create(
  task_id: str,
  payload: NoteCreateIn,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  result = await add_note(db, actor, task_id, payload.content)
  if not result.succeeded:
    return to_http(result)
  n: TaskNote = result.record
  return to_http(result, body=_note_out(n), location=f"/notes/{n.id}")


@router.get("/notes/{note_id}", response_model=NoteOut)
async def get_note(
  note_id: str,
  response: Response,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> NoteOut:
  n = await db.get(TaskNote, note_id)
  t = await db.get(TaskItem, n.task_id) if n else None
  if not n or not t:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
  await require_project_role(db, actor, t.project_id, ProjectRole.READER)
  response.headers["ETag"] = etag_for(n.row_version)
  return _note_out(n)


@router.patch("/notes/{note_id}")
async def edit(
  note_id: str,
  payload: NoteEditIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await edit_note(db, actor, note_id, supplied, payload.content))


@router.delete("/notes/{note_id}")
async def remove(
  note_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await delete_note(db, actor, note_id, supplied))
