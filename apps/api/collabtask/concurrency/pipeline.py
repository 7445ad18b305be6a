"""
Optimistic-concurrency write pipeline shared by every aggregate.

Each write runs: validate input, check the precondition, load, classify, and on the
effective path a conditional save. The in-memory version comparison is only a fast
path; the gateway re-checks the version inside the storage statement, and a lost race
there is reported as a conflict. Nothing here commits, retries, or swallows
cancellation.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any, Generic, Protocol, TypeVar

from collabtask.concurrency.outcomes import MutationKind, MutationOutcome, WriteResult, classify
from collabtask.concurrency.tokens import WILDCARD, Wildcard, matches, require_precondition
from collabtask.errors import FieldError, ValidationFailed
from collabtask.logging_config import get_logger
from collabtask.metrics import runtime_metrics

RecordT = TypeVar("RecordT")

logger = get_logger(__name__)

Changes = Mapping[str, Any]
# A plan inspects the loaded record and returns the column changes to apply (empty means
# no-op), or a NOT_FOUND / CONFLICT outcome when the change is structurally impossible.
Plan = Callable[[RecordT], "Changes | MutationOutcome | Awaitable[Changes | MutationOutcome]"]


class VersionGateway(Protocol, Generic[RecordT]):
  entity: str

  async def load_by_id(self, record_id: Any) -> RecordT | None: ...

  async def current_version(self, record_id: Any) -> bytes | None: ...

  def version_of(self, record: RecordT) -> bytes | None: ...

  def id_of(self, record: RecordT) -> Any: ...

  async def conditional_save(
    self,
    record: RecordT,
    expected_version: bytes | None,
    kind: MutationKind,
    changes: Changes | None = None,
  ) -> bytes | None:
    """Persist atomically if the stored version still equals `expected_version`.

    Returns the new token, or None when another writer won. For deletes the returned
    token is the one that was removed; it is never handed to callers.
    """
    ...


async def bounded(aw: Awaitable[Any], timeout: float | None) -> Any:
  if timeout is None:
    return await aw
  return await asyncio.wait_for(aw, timeout)


def precheck(kind: MutationKind, supplied: bytes | Wildcard | None, violations: Sequence[FieldError] = ()) -> None:
  """Reject malformed input and missing preconditions. Runs before any storage access."""
  if violations:
    raise ValidationFailed(list(violations))
  require_precondition(kind, supplied)


def _resolve(supplied: bytes | Wildcard | None, stored: bytes | None) -> bytes | None:
  # `If-Match: *` accepts whatever is stored right now.
  return stored if supplied is WILDCARD else supplied


def _finish(gateway: VersionGateway[Any], kind: MutationKind, record_id: Any, result: WriteResult) -> WriteResult:
  runtime_metrics.observe_mutation(result.outcome.value)
  logger.info(
    "write_classified",
    entity=gateway.entity,
    record_id=str(record_id) if record_id is not None else None,
    kind=kind.value,
    outcome=result.outcome.value,
  )
  return result


async def _lost_race(gateway: VersionGateway[Any], kind: MutationKind, record_id: Any, timeout: float | None) -> WriteResult:
  current = await bounded(gateway.current_version(record_id), timeout)
  return _finish(gateway, kind, record_id, WriteResult(MutationOutcome.CONFLICT, current_version=current))


async def create(
  gateway: VersionGateway[RecordT],
  record: RecordT,
  *,
  parent_present: bool = True,
  violations: Sequence[FieldError] = (),
  timeout: float | None = None,
) -> WriteResult:
  kind = MutationKind.CREATE
  precheck(kind, None, violations)
  record_id = gateway.id_of(record)
  outcome = classify(kind, record_present=parent_present, version_matches=True, change_is_noop=False)
  if outcome is not MutationOutcome.CREATED:
    return _finish(gateway, kind, record_id, WriteResult(outcome))

  token = await bounded(gateway.conditional_save(record, None, kind), timeout)
  if token is None:
    return _finish(gateway, kind, record_id, WriteResult(MutationOutcome.CONFLICT))
  return _finish(gateway, kind, record_id, WriteResult(MutationOutcome.CREATED, version=token, record=record))


async def update(
  gateway: VersionGateway[RecordT],
  record_id: Any,
  supplied: bytes | Wildcard | None,
  plan: Plan[RecordT],
  *,
  violations: Sequence[FieldError] = (),
  timeout: float | None = None,
) -> WriteResult:
  kind = MutationKind.UPDATE
  precheck(kind, supplied, violations)

  record = await bounded(gateway.load_by_id(record_id), timeout)
  if record is None:
    outcome = classify(kind, record_present=False, version_matches=False, change_is_noop=False)
    return _finish(gateway, kind, record_id, WriteResult(outcome))

  stored = gateway.version_of(record)
  if not matches(stored, _resolve(supplied, stored)):
    outcome = classify(kind, record_present=True, version_matches=False, change_is_noop=False)
    return _finish(gateway, kind, record_id, WriteResult(outcome, current_version=stored))

  planned = plan(record)
  if inspect.isawaitable(planned):
    planned = await bounded(planned, timeout)
  if isinstance(planned, MutationOutcome):
    current = stored if planned is MutationOutcome.CONFLICT else None
    return _finish(gateway, kind, record_id, WriteResult(planned, current_version=current))

  changes = dict(planned or {})
  outcome = classify(kind, record_present=True, version_matches=True, change_is_noop=not changes)
  if outcome is MutationOutcome.NO_OP:
    return _finish(gateway, kind, record_id, WriteResult(outcome, record=record))

  token = await bounded(gateway.conditional_save(record, stored, kind, changes), timeout)
  if token is None:
    return await _lost_race(gateway, kind, record_id, timeout)
  return _finish(gateway, kind, record_id, WriteResult(MutationOutcome.UPDATED, version=token, record=record))


async def delete(
  gateway: VersionGateway[RecordT],
  record_id: Any,
  supplied: bytes | Wildcard | None,
  *,
  violations: Sequence[FieldError] = (),
  timeout: float | None = None,
) -> WriteResult:
  kind = MutationKind.DELETE
  precheck(kind, supplied, violations)

  record = await bounded(gateway.load_by_id(record_id), timeout)
  if record is None:
    outcome = classify(kind, record_present=False, version_matches=False, change_is_noop=False)
    return _finish(gateway, kind, record_id, WriteResult(outcome))

  stored = gateway.version_of(record)
  if not matches(stored, _resolve(supplied, stored)):
    outcome = classify(kind, record_present=True, version_matches=False, change_is_noop=False)
    return _finish(gateway, kind, record_id, WriteResult(outcome, current_version=stored))

  token = await bounded(gateway.conditional_save(record, stored, kind), timeout)
  if token is None:
    return await _lost_race(gateway, kind, record_id, timeout)
  return _finish(gateway, kind, record_id, WriteResult(MutationOutcome.DELETED, record=record))


def reject(
  gateway: VersionGateway[Any],
  kind: MutationKind,
  record_id: Any,
  outcome: MutationOutcome,
  *,
  current_version: bytes | None = None,
) -> WriteResult:
  """Report an outcome decided before the save, such as a structural conflict found by the caller."""
  if outcome.succeeded:
    raise ValueError("reject() only reports unsuccessful outcomes")
  return _finish(gateway, kind, record_id, WriteResult(outcome, current_version=current_version))
