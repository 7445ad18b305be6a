from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TZ_SUFFIX_RE = re.compile(r"(Z|[+-]\d{2}:\d{2})$")


def _parse_dt_utc_require_tz(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
    if dt.tzinfo is None:
      raise ValueError("datetime must include timezone")
    return dt.astimezone(timezone.utc)
  if isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      raise ValueError("datetime must include time and timezone")
    if not _TZ_SUFFIX_RE.search(s):
      raise ValueError("datetime must include timezone")
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
      raise ValueError("datetime must include timezone")
    return dt.astimezone(timezone.utc)
  return value


class VersionedIn(BaseModel):
  # Alternative to the If-Match header.
  rowVersion: str | None = None


# Auth / users

class RegisterIn(BaseModel):
  email: str = Field(max_length=320)
  name: str = Field(max_length=200)
  password: str = Field(max_length=512)


class LoginIn(BaseModel):
  email: str
  password: str


class TokenOut(BaseModel):
  accessToken: str
  tokenType: Literal["bearer"] = "bearer"
  expiresIn: int


class UserOut(BaseModel):
  id: str
  email: str
  name: str
  role: Literal["user", "admin"]
  rowVersion: str
  createdAt: datetime


class UserRenameIn(VersionedIn):
  name: str = Field(max_length=200)


class UserRoleIn(VersionedIn):
  role: str


# Projects / members

class ProjectCreateIn(BaseModel):
  name: str = Field(max_length=200)


class ProjectRenameIn(VersionedIn):
  name: str = Field(max_length=200)


class ProjectOut(BaseModel):
  id: str
  name: str
  slug: str
  ownerId: str
  rowVersion: str
  createdAt: datetime
  updatedAt: datetime


class MemberAddIn(BaseModel):
  userId: str
  role: str = "member"


class MemberRoleIn(VersionedIn):
  role: str


class MemberOut(BaseModel):
  projectId: str
  userId: str
  role: str
  joinedAt: datetime
  removedAt: datetime | None = None
  rowVersion: str


# Lanes / columns

class LaneCreateIn(BaseModel):
  name: str = Field(max_length=200)
  position: int | None = None


class LaneOut(BaseModel):
  id: str
  projectId: str
  name: str
  position: int
  rowVersion: str


class ColumnCreateIn(BaseModel):
  name: str = Field(max_length=200)
  position: int | None = None


class ColumnOut(BaseModel):
  id: str
  projectId: str
  laneId: str
  name: str
  position: int
  rowVersion: str


class RenameIn(VersionedIn):
  name: str = Field(max_length=200)


class ReorderIn(VersionedIn):
  position: int


# Tasks / notes / assignments

class TaskCreateIn(BaseModel):
  title: str = Field(max_length=200)
  description: str = Field(max_length=4000)
  dueDate: datetime | None = None
  sortKey: float | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_utc(cls, v: Any) -> Any:
    return _parse_dt_utc_require_tz(v)


class TaskEditIn(VersionedIn):
  title: str | None = Field(default=None, max_length=200)
  description: str | None = Field(default=None, max_length=4000)
  dueDate: datetime | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_utc(cls, v: Any) -> Any:
    return _parse_dt_utc_require_tz(v)


class TaskMoveIn(VersionedIn):
  laneId: str
  columnId: str
  sortKey: float


class TaskOut(BaseModel):
  id: str
  projectId: str
  laneId: str
  columnId: str
  title: str
  description: str
  dueDate: datetime | None = None
  sortKey: float
  rowVersion: str
  createdAt: datetime
  updatedAt: datetime


class NoteCreateIn(BaseModel):
  content: str = Field(max_length=1000)


class NoteEditIn(VersionedIn):
  content: str = Field(max_length=1000)


class NoteOut(BaseModel):
  id: str
  taskId: str
  userId: str
  content: str
  rowVersion: str
  createdAt: datetime
  updatedAt: datetime


class AssignmentCreateIn(BaseModel):
  userId: str
  role: str = "co-owner"


class AssignmentRoleIn(VersionedIn):
  role: str


class AssignmentOut(BaseModel):
  taskId: str
  userId: str
  role: str
  rowVersion: str


class ActivityOut(BaseModel):
  id: str
  taskId: str
  actorId: str | None = None
  type: str
  payload: dict[str, Any] = Field(default_factory=dict)
  createdAt: datetime
