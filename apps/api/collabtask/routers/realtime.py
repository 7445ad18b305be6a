from __future__ import annotations

import asyncio

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from collabtask.access import require_project_role
from collabtask.db import SessionLocal
from collabtask.deps import actor_from_token
from collabtask.logging_config import get_logger
from collabtask.models import Project, ProjectRole
from collabtask.realtime.events import BoardEvent
from collabtask.realtime.hub import hub

router = APIRouter(tags=["realtime"])

logger = get_logger(__name__)

# HTTP status -> WebSocket close code for handshake refusals.
_CLOSE_CODES = {
  status.HTTP_401_UNAUTHORIZED: 4401,
  status.HTTP_403_FORBIDDEN: 4403,
  status.HTTP_404_NOT_FOUND: 4404,
}


async def _forward(websocket: WebSocket, queue: asyncio.Queue[BoardEvent]) -> None:
  while True:
    event = await queue.get()
    await websocket.send_json(event.to_wire())


async def _drain_inbound(websocket: WebSocket) -> None:
  # Inbound frames are ignored; receiving only detects the disconnect.
  while True:
    await websocket.receive_text()


@router.websocket("/projects/{project_id}/events")
async def board_events(websocket: WebSocket, project_id: str, token: str = "") -> None:
  async with SessionLocal() as db:
    try:
      actor = await actor_from_token(token, db)
      if not await db.get(Project, project_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
      await require_project_role(db, actor, project_id, ProjectRole.READER)
    except HTTPException as exc:
      logger.info("board_stream_refused", project_id=project_id, status_code=exc.status_code)
      await websocket.close(code=_CLOSE_CODES.get(exc.status_code, status.WS_1008_POLICY_VIOLATION))
      return

  # Subscribe before accepting so writes made right after the handshake are delivered.
  async with hub.subscription(project_id) as queue:
    await websocket.accept()
    logger.info("board_stream_opened", project_id=project_id, actor_id=actor.user_id)
    sender = asyncio.create_task(_forward(websocket, queue))
    receiver = asyncio.create_task(_drain_inbound(websocket))
    try:
      await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
      for task in (sender, receiver):
        task.cancel()
      results = await asyncio.gather(sender, receiver, return_exceptions=True)

  errors = [r for r in results if isinstance(r, Exception) and not isinstance(r, WebSocketDisconnect)]
  if errors:
    logger.warning("board_stream_failed", project_id=project_id, actor_id=actor.user_id, error=repr(errors[0]))
    if websocket.client_state is WebSocketState.CONNECTED:
      await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    return
  logger.info("board_stream_closed", project_id=project_id, actor_id=actor.user_id)
