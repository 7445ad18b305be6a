"""
Board events pushed to realtime subscribers.

A `BoardEvent` is a tagged union: the `kind` string is derived from the payload class, so
every kind has exactly one payload shape.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from fastapi.encoders import jsonable_encoder

from collabtask.models import utcnow


@dataclass(frozen=True)
class ProjectUpdated:
  name: str
  slug: str


@dataclass(frozen=True)
class ProjectDeleted:
  project_id: str


@dataclass(frozen=True)
class MemberAdded:
  user_id: str
  role: str


@dataclass(frozen=True)
class MemberUpdated:
  user_id: str
  role: str
  removed: bool


@dataclass(frozen=True)
class LaneCreated:
  lane_id: str
  name: str
  position: int


@dataclass(frozen=True)
class LaneUpdated:
  lane_id: str
  name: str
  position: int


@dataclass(frozen=True)
class LaneDeleted:
  lane_id: str


@dataclass(frozen=True)
class ColumnCreated:
  column_id: str
  lane_id: str
  name: str
  position: int


@dataclass(frozen=True)
class ColumnUpdated:
  column_id: str
  lane_id: str
  name: str
  position: int


@dataclass(frozen=True)
class ColumnDeleted:
  column_id: str
  lane_id: str


@dataclass(frozen=True)
class TaskCreated:
  task_id: str
  column_id: str
  lane_id: str
  title: str
  description: str
  sort_key: float


@dataclass(frozen=True)
class TaskUpdated:
  task_id: str
  new_title: str | None
  new_description: str | None
  new_due_date: datetime | None


@dataclass(frozen=True)
class TaskMoved:
  task_id: str
  from_lane_id: str
  from_column_id: str
  to_lane_id: str
  to_column_id: str
  sort_key: float


@dataclass(frozen=True)
class TaskDeleted:
  task_id: str


@dataclass(frozen=True)
class NoteCreated:
  note_id: str
  task_id: str
  user_id: str
  content: str


@dataclass(frozen=True)
class NoteUpdated:
  note_id: str
  task_id: str
  content: str


@dataclass(frozen=True)
class NoteDeleted:
  note_id: str
  task_id: str


@dataclass(frozen=True)
class AssignmentCreated:
  task_id: str
  user_id: str
  role: str


@dataclass(frozen=True)
class AssignmentUpdated:
  task_id: str
  user_id: str
  role: str


@dataclass(frozen=True)
class AssignmentRemoved:
  task_id: str
  user_id: str


EVENT_KINDS: dict[type, str] = {
  ProjectUpdated: "project.updated",
  ProjectDeleted: "project.deleted",
  MemberAdded: "member.added",
  MemberUpdated: "member.updated",
  LaneCreated: "lane.created",
  LaneUpdated: "lane.updated",
  LaneDeleted: "lane.deleted",
  ColumnCreated: "column.created",
  ColumnUpdated: "column.updated",
  ColumnDeleted: "column.deleted",
  TaskCreated: "task.created",
  TaskUpdated: "task.updated",
  TaskMoved: "task.moved",
  TaskDeleted: "task.deleted",
  NoteCreated: "note.created",
  NoteUpdated: "note.updated",
  NoteDeleted: "note.deleted",
  AssignmentCreated: "assignment.created",
  AssignmentUpdated: "assignment.updated",
  AssignmentRemoved: "assignment.removed",
}


def _camel(name: str) -> str:
  head, *rest = name.split("_")
  return head + "".join(p[:1].upper() + p[1:] for p in rest)


@dataclass(frozen=True)
class BoardEvent:
  kind: str
  project_id: str
  payload: Any
  occurred_at: datetime = field(default_factory=utcnow)

  def __post_init__(self) -> None:
    expected = EVENT_KINDS.get(type(self.payload))
    if expected is None:
      raise TypeError(f"Unsupported board event payload {type(self.payload).__name__}")
    if expected != self.kind:
      raise ValueError(f"Payload {type(self.payload).__name__} belongs to {expected!r}, not {self.kind!r}")

  @classmethod
  def of(cls, project_id: str, payload: Any) -> BoardEvent:
    kind = EVENT_KINDS.get(type(payload))
    if kind is None:
      raise TypeError(f"Unsupported board event payload {type(payload).__name__}")
    return cls(kind=kind, project_id=project_id, payload=payload)

  def to_wire(self) -> dict[str, Any]:
    return jsonable_encoder(
      {
        "type": self.kind,
        "projectId": self.project_id,
        "occurredAt": self.occurred_at,
        "payload": {_camel(k): v for k, v in asdict(self.payload).items()},
      }
    )
