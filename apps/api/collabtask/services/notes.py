from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask import validation as v
from collabtask.access import Actor, require_project_role
from collabtask.activity import record_activity
from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, WriteResult
from collabtask.concurrency.tokens import Wildcard
from collabtask.models import ProjectRole, TaskActivityType, TaskItem, TaskNote, new_id
from collabtask.realtime.events import BoardEvent, NoteCreated, NoteDeleted, NoteUpdated
from collabtask.realtime.hub import Notifier, emit_after_commit, hub
from collabtask.services.common import commit, gateway, load, write_timeout


async def _authorize_note(db: AsyncSession, actor: Actor, note_id: str) -> str | None:
  """Authors edit their own notes; project admins may edit any. Returns the project id."""
  n = await load(db, TaskNote, note_id)
  if n is None:
    return None
  t = await load(db, TaskItem, n.task_id)
  if t is None:
    return None
  role = await require_project_role(db, actor, t.project_id, ProjectRole.MEMBER)
  if n.user_id != actor.user_id and role.rank < ProjectRole.ADMIN.rank:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the author can change this note")
  return t.project_id


async def add_note(
  db: AsyncSession,
  actor: Actor,
  task_id: str,
  content: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.CREATE, None, v.note_content(content))
  task = await load(db, TaskItem, task_id)
  if task is not None:
    await require_project_role(db, actor, task.project_id, ProjectRole.MEMBER)
  n = TaskNote(id=new_id(), task_id=task_id, user_id=actor.user_id, content=content.strip())
  result = await pipeline.create(gateway(db, TaskNote), n, parent_present=task is not None, timeout=write_timeout())
  if not result.succeeded:
    return result
  await record_activity(
    db,
    task_id=task_id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.NOTE_ADDED,
    payload={"noteId": n.id, "content": n.content},
  )
  event = BoardEvent.of(task.project_id, NoteCreated(note_id=n.id, task_id=task_id, user_id=n.user_id, content=n.content))
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def edit_note(
  db: AsyncSession,
  actor: Actor,
  note_id: str,
  supplied: bytes | Wildcard | None,
  content: str,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.UPDATE, supplied, v.note_content(content))
  project_id = await _authorize_note(db, actor, note_id)
  clean = content.strip()

  def plan(n: TaskNote) -> dict:
    return {} if n.content == clean else {"content": clean}

  result = await pipeline.update(gateway(db, TaskNote), note_id, supplied, plan, timeout=write_timeout())
  if not result.succeeded:
    return result
  n: TaskNote = result.record
  await record_activity(
    db,
    task_id=n.task_id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.NOTE_EDITED,
    payload={"noteId": n.id, "content": n.content},
  )
  event = BoardEvent.of(project_id, NoteUpdated(note_id=n.id, task_id=n.task_id, content=n.content))
  await commit(db)
  emit_after_commit(notifier, event)
  return result


async def delete_note(
  db: AsyncSession,
  actor: Actor,
  note_id: str,
  supplied: bytes | Wildcard | None,
  *,
  notifier: Notifier = hub,
) -> WriteResult:
  pipeline.precheck(MutationKind.DELETE, supplied)
  project_id = await _authorize_note(db, actor, note_id)
  result = await pipeline.delete(gateway(db, TaskNote), note_id, supplied, timeout=write_timeout())
  if not result.succeeded:
    return result
  n: TaskNote = result.record
  await record_activity(
    db,
    task_id=n.task_id,
    actor_id=actor.user_id,
    activity_type=TaskActivityType.NOTE_REMOVED,
    payload={"noteId": n.id},
  )
  event = BoardEvent.of(project_id, NoteDeleted(note_id=n.id, task_id=n.task_id))
  await commit(db)
  emit_after_commit(notifier, event)
  return result
