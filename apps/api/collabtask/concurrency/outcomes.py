from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MutationKind(str, Enum):
  CREATE = "create"
  UPDATE = "update"
  DELETE = "delete"

  @classmethod
  def from_http_method(cls, method: str) -> MutationKind:
    m = (method or "").strip().upper()
    if m == "POST":
      return cls.CREATE
    if m in {"PATCH", "PUT"}:
      return cls.UPDATE
    if m == "DELETE":
      return cls.DELETE
    raise ValueError(f"No mutation kind for HTTP method {method!r}")


class MutationOutcome(str, Enum):
  CREATED = "created"
  UPDATED = "updated"
  DELETED = "deleted"
  NO_OP = "no-op"
  NOT_FOUND = "not-found"
  CONFLICT = "conflict"

  @property
  def succeeded(self) -> bool:
    return self in _SUCCESS


_SUCCESS = frozenset({MutationOutcome.CREATED, MutationOutcome.UPDATED, MutationOutcome.DELETED})

_SUCCESS_BY_KIND = {
  MutationKind.CREATE: MutationOutcome.CREATED,
  MutationKind.UPDATE: MutationOutcome.UPDATED,
  MutationKind.DELETE: MutationOutcome.DELETED,
}


@dataclass(frozen=True)
class WriteResult:
  """
  Result of one write attempt.

  `version` is the freshly stored token and only exists on Created/Updated.
  `current_version` is filled on Conflict when the stored version is known, so the
  caller can reload. `record` is the affected row for building response bodies.
  """

  outcome: MutationOutcome
  version: bytes | None = None
  record: Any = None
  current_version: bytes | None = None

  def __post_init__(self) -> None:
    if self.version is not None and not self.outcome.succeeded:
      raise ValueError(f"{self.outcome.value} cannot carry a new version token")

  @property
  def succeeded(self) -> bool:
    return self.outcome.succeeded


def success_outcome(kind: MutationKind) -> MutationOutcome:
  return _SUCCESS_BY_KIND[kind]


def classify(
  kind: MutationKind,
  *,
  record_present: bool,
  version_matches: bool,
  change_is_noop: bool,
) -> MutationOutcome:
  # Mismatch is checked before no-op detection so that a stale caller sending a
  # redundant change still learns its view is outdated.
  if not record_present:
    return MutationOutcome.NO_OP if kind is MutationKind.DELETE else MutationOutcome.NOT_FOUND
  if not version_matches:
    return MutationOutcome.CONFLICT
  if change_is_noop:
    return MutationOutcome.NO_OP
  return success_outcome(kind)
