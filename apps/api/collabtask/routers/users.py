from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor, require_admin
from collabtask.concurrency.http import to_http
from collabtask.concurrency.tokens import encode_token, etag_for
from collabtask.deps import get_current_actor, get_db, supplied_version
from collabtask.models import User, as_utc
from collabtask.schemas import UserOut, UserRenameIn, UserRoleIn, VersionedIn
from collabtask.services.users import change_user_role, delete_user, rename_user

router = APIRouter(prefix="/users", tags=["users"])


def _user_out(u: User) -> UserOut:
  return UserOut(
    id=u.id,
    email=u.email,
    name=u.name,
    role=u.role,
    rowVersion=encode_token(u.row_version),
    createdAt=as_utc(u.created_at),
  )


@router.get("", response_model=list[UserOut])
async def list_users(actor: Actor = Depends(get_current_actor), db: AsyncSession = Depends(get_db)) -> list[UserOut]:
  require_admin(actor)
  res = await db.execute(select(User).order_by(User.created_at.asc()))
  return [_user_out(u) for u in res.scalars().all()]


@router.get("/{user_id}", response_model=UserOut)
async def get_user(
  user_id: str,
  response: Response,
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> UserOut:
  if actor.user_id != user_id and not actor.is_admin:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot read another user")
  u = await db.get(User, user_id)
  if not u:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
  response.headers["ETag"] = etag_for(u.row_version)
  return _user_out(u)


@router.patch("/{user_id}")
async def rename(
  user_id: str,
  payload: UserRenameIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await rename_user(db, actor, user_id, supplied, payload.name))


@router.put("/{user_id}/role")
async def change_role(
  user_id: str,
  payload: UserRoleIn,
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion)
  return to_http(await change_user_role(db, actor, user_id, supplied, payload.role))


@router.delete("/{user_id}")
async def remove(
  user_id: str,
  payload: VersionedIn | None = Body(default=None),
  if_match: str | None = Header(default=None, alias="If-Match"),
  actor: Actor = Depends(get_current_actor),
  db: AsyncSession = Depends(get_db),
) -> Response:
  supplied = supplied_version(if_match, payload.rowVersion if payload else None)
  return to_http(await delete_user(db, actor, user_id, supplied))
