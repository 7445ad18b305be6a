from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask import validation as v
from collabtask.access import Actor, require_admin
from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, WriteResult
from collabtask.concurrency.tokens import Wildcard
from collabtask.logging_config import get_logger
from collabtask.models import User, UserRole, new_id
from collabtask.security import hash_password
from collabtask.services.common import commit, gateway, write_timeout

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
  return (email or "").strip().lower()


async def register_user(
  db: AsyncSession,
  *,
  email: str,
  name: str,
  password: str,
  role: UserRole = UserRole.USER,
) -> WriteResult:
  violations = v.collect(v.email(email), v.user_name(name), v.password(password))
  pipeline.precheck(MutationKind.CREATE, None, violations)
  u = User(
    id=new_id(),
    email=normalize_email(email),
    name=name.strip(),
    role=role.value,
    password_hash=hash_password(password),
  )
  result = await pipeline.create(gateway(db, User), u, timeout=write_timeout())
  if result.succeeded:
    await commit(db)
    logger.info("user_registered", user_id=u.id)
  return result


def _require_self_or_admin(actor: Actor, user_id: str) -> None:
  if actor.user_id != user_id and not actor.is_admin:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot modify another user")


async def rename_user(db: AsyncSession, actor: Actor, user_id: str, supplied: bytes | Wildcard | None, name: str) -> WriteResult:
  _require_self_or_admin(actor, user_id)
  new_name = (name or "").strip()

  def plan(u: User) -> dict:
    return {} if u.name == new_name else {"name": new_name}

  result = await pipeline.update(
    gateway(db, User), user_id, supplied, plan, violations=v.user_name(name), timeout=write_timeout()
  )
  if result.succeeded:
    await commit(db)
  return result


async def change_user_role(db: AsyncSession, actor: Actor, user_id: str, supplied: bytes | Wildcard | None, role: str) -> WriteResult:
  require_admin(actor)

  def plan(u: User) -> dict:
    return {} if u.role == role else {"role": role}

  result = await pipeline.update(
    gateway(db, User),
    user_id,
    supplied,
    plan,
    violations=v.enum_value(role, UserRole, "role"),
    timeout=write_timeout(),
  )
  if result.succeeded:
    await commit(db)
    logger.info("user_role_changed", user_id=user_id, role=role, actor_id=actor.user_id)
  return result


async def delete_user(db: AsyncSession, actor: Actor, user_id: str, supplied: bytes | Wildcard | None) -> WriteResult:
  require_admin(actor)
  pipeline.precheck(MutationKind.DELETE, supplied)
  if user_id == actor.user_id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete yourself")
  result = await pipeline.delete(gateway(db, User), user_id, supplied, timeout=write_timeout())
  if result.succeeded:
    await commit(db)
    logger.info("user_deleted", user_id=user_id, actor_id=actor.user_id)
  return result
