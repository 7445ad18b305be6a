from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy import (
  JSON,
  DateTime,
  Float,
  ForeignKey,
  Integer,
  LargeBinary,
  String,
  Text,
  UniqueConstraint,
  Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from collabtask.concurrency.tokens import new_version_token


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def as_utc(dt: datetime | None) -> datetime | None:
  # SQLite hands back naive datetimes for timezone-aware columns.
  if dt is None:
    return None
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class UserRole(str, Enum):
  USER = "user"
  ADMIN = "admin"


class ProjectRole(str, Enum):
  READER = "reader"
  MEMBER = "member"
  ADMIN = "admin"
  OWNER = "owner"

  @property
  def rank(self) -> int:
    return _PROJECT_ROLE_RANK[self]


_PROJECT_ROLE_RANK = {
  ProjectRole.READER: 0,
  ProjectRole.MEMBER: 1,
  ProjectRole.ADMIN: 2,
  ProjectRole.OWNER: 3,
}


class TaskRole(str, Enum):
  OWNER = "owner"
  CO_OWNER = "co-owner"


class TaskActivityType(str, Enum):
  TASK_CREATED = "task.created"
  TASK_EDITED = "task.edited"
  TASK_MOVED = "task.moved"
  ASSIGNMENT_CREATED = "assignment.created"
  ASSIGNMENT_ROLE_CHANGED = "assignment.role_changed"
  ASSIGNMENT_REMOVED = "assignment.removed"
  NOTE_ADDED = "note.added"
  NOTE_EDITED = "note.edited"
  NOTE_REMOVED = "note.removed"


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String(100), nullable=False)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  role: Mapped[str] = mapped_column(String, nullable=False, default=UserRole.USER.value)
  row_version: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=new_version_token)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Project(Base):
  __tablename__ = "projects"
  __table_args__ = (UniqueConstraint("owner_id", "slug", name="ux_projects_owner_slug"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String(100), nullable=False)
  slug: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
  owner_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False, index=True)
  row_version: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=new_version_token)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class ProjectMember(Base):
  __tablename__ = "project_members"

  project_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True
  )
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), primary_key=True, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False)
  joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  removed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  row_version: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=new_version_token)


class Lane(Base):
  __tablename__ = "lanes"
  __table_args__ = (UniqueConstraint("project_id", "name", name="ux_lanes_project_name"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=new_id)
  project_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
  )
  name: Mapped[str] = mapped_column(String(100), nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  row_version: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=new_version_token)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class BoardColumn(Base):
  __tablename__ = "columns"
  __table_args__ = (UniqueConstraint("lane_id", "name", name="ux_columns_lane_name"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=new_id)
  project_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
  )
  lane_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("lanes.id", ondelete="CASCADE"), nullable=False, index=True
  )
  name: Mapped[str] = mapped_column(String(100), nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  row_version: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=new_version_token)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class TaskItem(Base):
  __tablename__ = "tasks"
  __table_args__ = (UniqueConstraint("column_id", "title", name="ux_tasks_column_title"),)

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=new_id)
  project_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
  )
  lane_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("lanes.id", ondelete="CASCADE"), nullable=False, index=True
  )
  column_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("columns.id", ondelete="CASCADE"), nullable=False, index=True
  )
  title: Mapped[str] = mapped_column(String(100), nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False)
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  sort_key: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
  row_version: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=new_version_token)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class TaskNote(Base):
  __tablename__ = "task_notes"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
  )
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), nullable=False, index=True)
  content: Mapped[str] = mapped_column(Text, nullable=False)
  row_version: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=new_version_token)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class TaskAssignment(Base):
  __tablename__ = "task_assignments"

  task_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True
  )
  user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), ForeignKey("users.id"), primary_key=True, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False)
  row_version: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=new_version_token)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class TaskActivity(Base):
  __tablename__ = "task_activities"

  id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=new_id)
  task_id: Mapped[str] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
  )
  actor_id: Mapped[str | None] = mapped_column(
    Uuid(as_uuid=False), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
  )
  type: Mapped[str] = mapped_column(String, nullable=False)
  payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
