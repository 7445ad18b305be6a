from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.access import Actor
from collabtask.concurrency.tokens import Wildcard, decode_token, parse_if_match
from collabtask.db import SessionLocal
from collabtask.errors import ValidationFailed
from collabtask.logging_config import bind_request_context
from collabtask.models import User
from collabtask.persistence import storage_errors
from collabtask.security import InvalidAccessToken, decode_access_token


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def actor_from_token(token: str, db: AsyncSession) -> Actor:
  try:
    user_id = decode_access_token(token)
  except InvalidAccessToken as exc:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc
  with storage_errors("User", "authenticate"):
    u = await db.get(User, user_id)
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  bind_request_context(actor_id=u.id)
  return Actor(user_id=u.id, role=u.role)


async def get_current_actor(request: Request, db: AsyncSession = Depends(get_db)) -> Actor:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    raise HTTPException(
      status_code=status.HTTP_401_UNAUTHORIZED,
      detail="Not authenticated",
      headers={"WWW-Authenticate": "Bearer"},
    )
  token = auth.split(" ", 1)[1].strip()
  if not token:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
  return await actor_from_token(token, db)


def supplied_version(if_match: str | None, row_version: str | None) -> bytes | Wildcard | None:
  """Version token from `If-Match` (preferred) or the `rowVersion` body field."""
  from_header = parse_if_match(if_match)
  if from_header is not None:
    return from_header
  return decode_token(row_version)


async def reject_if_match(if_match: str | None = Header(default=None, alias="If-Match")) -> None:
  if if_match is not None and if_match.strip():
    raise ValidationFailed.single("If-Match", "If-Match is not allowed when creating a resource.")
