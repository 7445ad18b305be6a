from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import pytest

from collabtask.concurrency import pipeline
from collabtask.concurrency.outcomes import MutationKind, MutationOutcome
from collabtask.concurrency.tokens import WILDCARD, new_version_token
from collabtask.errors import FieldError, PreconditionMissing, ValidationFailed
from collabtask.metrics import runtime_metrics


@dataclass
class Card:
  id: str
  title: str
  row_version: bytes | None = None


@dataclass
class MemoryGateway:
  """Dict-backed gateway. `interloper` runs between load and save to simulate a racing writer."""

  entity: str = "Card"
  rows: dict[str, Card] = field(default_factory=dict)
  calls: list[str] = field(default_factory=list)
  interloper: Any = None
  save_delay: float = 0.0

  def seed(self, card_id: str, title: str) -> Card:
    card = Card(card_id, title, new_version_token())
    self.rows[card_id] = card
    return Card(card.id, card.title, card.row_version)

  async def load_by_id(self, record_id):
    self.calls.append("load")
    row = self.rows.get(record_id)
    return Card(row.id, row.title, row.row_version) if row else None

  async def current_version(self, record_id):
    row = self.rows.get(record_id)
    return row.row_version if row else None

  def version_of(self, record):
    return record.row_version

  def id_of(self, record):
    return record.id

  async def conditional_save(self, record, expected_version, kind, changes=None):
    self.calls.append(f"save:{kind.value}")
    if self.save_delay:
      await asyncio.sleep(self.save_delay)
    if self.interloper:
      self.interloper()
      self.interloper = None
    stored = self.rows.get(record.id)
    if kind is MutationKind.CREATE:
      if stored is not None:
        return None
      record.row_version = new_version_token()
      self.rows[record.id] = Card(record.id, record.title, record.row_version)
      return record.row_version
    if stored is None or stored.row_version != expected_version:
      return None
    if kind is MutationKind.DELETE:
      del self.rows[record.id]
      return expected_version
    for k, v in (changes or {}).items():
      setattr(record, k, v)
      setattr(stored, k, v)
    stored.row_version = record.row_version = new_version_token(expected_version)
    return stored.row_version


def _retitle(title: str):
  def plan(card: Card) -> dict:
    return {} if card.title == title else {"title": title}

  return plan


@pytest.mark.anyio
async def test_create_stores_a_fresh_version() -> None:
  gw = MemoryGateway()
  res = await pipeline.create(gw, Card("c1", "Draft"))
  assert res.outcome is MutationOutcome.CREATED
  assert res.version == gw.rows["c1"].row_version


@pytest.mark.anyio
async def test_create_under_missing_parent_is_not_found_without_storage() -> None:
  gw = MemoryGateway()
  res = await pipeline.create(gw, Card("c1", "Draft"), parent_present=False)
  assert res.outcome is MutationOutcome.NOT_FOUND
  assert gw.calls == []


@pytest.mark.anyio
async def test_create_on_existing_key_is_conflict() -> None:
  gw = MemoryGateway()
  gw.seed("c1", "Draft")
  res = await pipeline.create(gw, Card("c1", "Other"))
  assert res.outcome is MutationOutcome.CONFLICT
  assert res.version is None


@pytest.mark.anyio
async def test_update_success_replaces_version() -> None:
  gw = MemoryGateway()
  before = gw.seed("c1", "Draft")
  res = await pipeline.update(gw, "c1", before.row_version, _retitle("Final"))
  assert res.outcome is MutationOutcome.UPDATED
  assert res.version != before.row_version
  assert gw.rows["c1"].title == "Final"


@pytest.mark.anyio
async def test_stale_update_is_conflict_with_current_version() -> None:
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version
  ok = await pipeline.update(gw, "c1", v1, _retitle("Second"))
  stale = await pipeline.update(gw, "c1", v1, _retitle("Third"))
  assert stale.outcome is MutationOutcome.CONFLICT
  assert stale.current_version == ok.version
  assert gw.rows["c1"].title == "Second"


@pytest.mark.anyio
async def test_stale_caller_sending_redundant_change_still_conflicts() -> None:
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version
  await pipeline.update(gw, "c1", v1, _retitle("Second"))
  res = await pipeline.update(gw, "c1", v1, _retitle("Second"))
  assert res.outcome is MutationOutcome.CONFLICT


@pytest.mark.anyio
async def test_noop_update_skips_save_and_keeps_version() -> None:
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version
  res = await pipeline.update(gw, "c1", v1, _retitle("Draft"))
  assert res.outcome is MutationOutcome.NO_OP
  assert res.version is None
  assert gw.rows["c1"].row_version == v1
  assert "save:update" not in gw.calls


@pytest.mark.anyio
async def test_update_missing_record_is_not_found() -> None:
  res = await pipeline.update(MemoryGateway(), "ghost", b"whatever", _retitle("x"))
  assert res.outcome is MutationOutcome.NOT_FOUND


@pytest.mark.anyio
async def test_lost_race_in_storage_is_conflict() -> None:
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version

  def other_writer() -> None:
    gw.rows["c1"].title = "Theirs"
    gw.rows["c1"].row_version = new_version_token(v1)

  gw.interloper = other_writer
  res = await pipeline.update(gw, "c1", v1, _retitle("Mine"))
  assert res.outcome is MutationOutcome.CONFLICT
  assert res.current_version == gw.rows["c1"].row_version
  assert gw.rows["c1"].title == "Theirs"


@pytest.mark.anyio
async def test_concurrent_updates_with_same_token_have_one_winner() -> None:
  gw = MemoryGateway(save_delay=0.01)
  v1 = gw.seed("c1", "Draft").row_version
  results = await asyncio.gather(
    pipeline.update(gw, "c1", v1, _retitle("A")),
    pipeline.update(gw, "c1", v1, _retitle("B")),
  )
  outcomes = sorted(r.outcome.value for r in results)
  assert outcomes == ["conflict", "updated"]


@pytest.mark.anyio
async def test_delete_is_idempotent() -> None:
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version
  first = await pipeline.delete(gw, "c1", v1)
  again = await pipeline.delete(gw, "c1", v1)
  assert first.outcome is MutationOutcome.DELETED
  assert first.version is None
  assert again.outcome is MutationOutcome.NO_OP


@pytest.mark.anyio
async def test_stale_delete_is_conflict() -> None:
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version
  await pipeline.update(gw, "c1", v1, _retitle("Second"))
  res = await pipeline.delete(gw, "c1", v1)
  assert res.outcome is MutationOutcome.CONFLICT
  assert "c1" in gw.rows


@pytest.mark.anyio
async def test_wildcard_accepts_the_stored_version() -> None:
  gw = MemoryGateway()
  gw.seed("c1", "Draft")
  res = await pipeline.update(gw, "c1", WILDCARD, _retitle("Forced"))
  assert res.outcome is MutationOutcome.UPDATED


@pytest.mark.anyio
async def test_missing_precondition_is_raised_before_loading() -> None:
  gw = MemoryGateway()
  gw.seed("c1", "Draft")
  with pytest.raises(PreconditionMissing):
    await pipeline.update(gw, "c1", None, _retitle("x"))
  with pytest.raises(PreconditionMissing):
    await pipeline.delete(gw, "c1", None)
  assert gw.calls == []


@pytest.mark.anyio
async def test_validation_failure_is_raised_before_storage() -> None:
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version
  with pytest.raises(ValidationFailed) as exc:
    await pipeline.update(gw, "c1", v1, _retitle(""), violations=[FieldError("title", "Task title is required.")])
  assert exc.value.errors[0].field == "title"
  assert gw.calls == []


@pytest.mark.anyio
async def test_plan_may_refuse_with_an_outcome() -> None:
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version

  async def plan(card: Card):
    return MutationOutcome.CONFLICT

  res = await pipeline.update(gw, "c1", v1, plan)
  assert res.outcome is MutationOutcome.CONFLICT
  assert res.current_version == v1
  assert gw.rows["c1"].row_version == v1


@pytest.mark.anyio
async def test_timeout_propagates_and_leaves_record_unchanged() -> None:
  gw = MemoryGateway(save_delay=0.5)
  v1 = gw.seed("c1", "Draft").row_version
  with pytest.raises(asyncio.TimeoutError):
    await pipeline.update(gw, "c1", v1, _retitle("Slow"), timeout=0.01)
  assert gw.rows["c1"].title == "Draft"
  assert gw.rows["c1"].row_version == v1


@pytest.mark.anyio
async def test_outcomes_are_counted() -> None:
  runtime_metrics.reset()
  gw = MemoryGateway()
  v1 = gw.seed("c1", "Draft").row_version
  await pipeline.update(gw, "c1", v1, _retitle("Draft"))
  await pipeline.delete(gw, "ghost", v1)
  counts = runtime_metrics.snapshot()["mutationOutcomes"]
  assert counts == {"no-op": 2}


def test_reject_refuses_success_outcomes() -> None:
  with pytest.raises(ValueError):
    pipeline.reject(MemoryGateway(), MutationKind.CREATE, "c1", MutationOutcome.CREATED)
  res = pipeline.reject(MemoryGateway(), MutationKind.CREATE, "c1", MutationOutcome.CONFLICT)
  assert res.outcome is MutationOutcome.CONFLICT
