from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.models import ProjectMember, ProjectRole, UserRole


@dataclass(frozen=True)
class Actor:
  """The authenticated caller, passed explicitly into every write."""

  user_id: str
  role: str = UserRole.USER.value

  @property
  def is_admin(self) -> bool:
    return self.role == UserRole.ADMIN.value


async def project_role_of(db: AsyncSession, actor: Actor, project_id: str) -> ProjectRole | None:
  res = await db.execute(
    select(ProjectMember.role).where(
      ProjectMember.project_id == project_id,
      ProjectMember.user_id == actor.user_id,
      ProjectMember.removed_at.is_(None),
    )
  )
  role = res.scalar_one_or_none()
  return ProjectRole(role) if role else None


async def require_project_role(db: AsyncSession, actor: Actor, project_id: str, min_role: ProjectRole) -> ProjectRole:
  # role order: reader < member < admin < owner
  role = await project_role_of(db, actor, project_id)
  if role is None:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No project access")
  if role.rank < min_role.rank:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
  return role


def require_admin(actor: Actor) -> None:
  if not actor.is_admin:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
