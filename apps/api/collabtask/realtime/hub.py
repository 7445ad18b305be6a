from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Protocol

from collabtask.config import settings
from collabtask.logging_config import get_logger
from collabtask.metrics import runtime_metrics
from collabtask.realtime.events import BoardEvent

logger = get_logger(__name__)


class Notifier(Protocol):
  def publish(self, event: BoardEvent) -> None: ...


class BoardEventHub:
  """In-process fan-out of board events to per-project subscriber queues."""

  def __init__(self, queue_size: int | None = None) -> None:
    self._queue_size = max(1, int(queue_size or settings.event_queue_size))
    self._subscribers: dict[str, set[asyncio.Queue[BoardEvent]]] = defaultdict(set)

  def subscriber_count(self, project_id: str) -> int:
    return len(self._subscribers.get(project_id, ()))

  def subscribe(self, project_id: str) -> asyncio.Queue[BoardEvent]:
    q: asyncio.Queue[BoardEvent] = asyncio.Queue(maxsize=self._queue_size)
    self._subscribers[project_id].add(q)
    return q

  def unsubscribe(self, project_id: str, q: asyncio.Queue[BoardEvent]) -> None:
    subs = self._subscribers.get(project_id)
    if not subs:
      return
    subs.discard(q)
    if not subs:
      self._subscribers.pop(project_id, None)

  @asynccontextmanager
  async def subscription(self, project_id: str) -> AsyncIterator[asyncio.Queue[BoardEvent]]:
    q = self.subscribe(project_id)
    try:
      yield q
    finally:
      self.unsubscribe(project_id, q)

  def publish(self, event: BoardEvent) -> None:
    # Never blocks: a subscriber that cannot keep up loses the event.
    for q in list(self._subscribers.get(event.project_id, ())):
      try:
        q.put_nowait(event)
      except asyncio.QueueFull:
        runtime_metrics.observe_dropped_event()
        logger.warning("board_event_dropped", project_id=event.project_id, kind=event.kind)


def emit_after_commit(notifier: Notifier, event: BoardEvent) -> None:
  """Publish an event for a write that has already committed. Failures are logged only."""
  try:
    notifier.publish(event)
  except Exception:
    logger.exception("board_event_emit_failed", project_id=event.project_id, kind=event.kind)


hub = BoardEventHub()
