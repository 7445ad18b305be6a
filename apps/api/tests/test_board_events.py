from __future__ import annotations

import pytest

from collabtask.metrics import runtime_metrics
from collabtask.realtime.events import BoardEvent, LaneCreated, TaskMoved
from collabtask.realtime.hub import BoardEventHub, emit_after_commit


def _moved(project_id: str = "p1") -> BoardEvent:
  return BoardEvent.of(
    project_id,
    TaskMoved(task_id="t1", from_lane_id="l1", from_column_id="c1", to_lane_id="l1", to_column_id="c2", sort_key=2.0),
  )


def test_event_kind_follows_payload() -> None:
  ev = BoardEvent.of("p1", LaneCreated(lane_id="l1", name="Backlog", position=0))
  assert ev.kind == "lane.created"
  with pytest.raises(ValueError):
    BoardEvent(kind="lane.deleted", project_id="p1", payload=LaneCreated(lane_id="l1", name="x", position=0))
  with pytest.raises(TypeError):
    BoardEvent.of("p1", {"not": "a payload"})


def test_wire_format_is_camel_case() -> None:
  wire = _moved().to_wire()
  assert wire["type"] == "task.moved"
  assert wire["projectId"] == "p1"
  assert isinstance(wire["occurredAt"], str)
  assert wire["payload"] == {
    "taskId": "t1",
    "fromLaneId": "l1",
    "fromColumnId": "c1",
    "toLaneId": "l1",
    "toColumnId": "c2",
    "sortKey": 2.0,
  }


@pytest.mark.anyio
async def test_hub_fans_out_per_project() -> None:
  hub = BoardEventHub(queue_size=4)
  async with hub.subscription("p1") as mine, hub.subscription("p2") as other:
    hub.publish(_moved("p1"))
    assert mine.qsize() == 1
    assert other.qsize() == 0
    assert (await mine.get()).kind == "task.moved"
  assert hub.subscriber_count("p1") == 0


@pytest.mark.anyio
async def test_full_subscriber_drops_instead_of_blocking() -> None:
  runtime_metrics.reset()
  hub = BoardEventHub(queue_size=1)
  async with hub.subscription("p1") as q:
    hub.publish(_moved())
    hub.publish(_moved())
    assert q.qsize() == 1
  assert runtime_metrics.snapshot()["droppedEvents"] == 1


def test_emit_after_commit_never_raises() -> None:
  class Broken:
    def publish(self, event: BoardEvent) -> None:
      raise RuntimeError("socket gone")

  emit_after_commit(Broken(), _moved())
