from __future__ import annotations

from fastapi import APIRouter, Depends

from collabtask.access import Actor, require_admin
from collabtask.config import settings
from collabtask.deps import get_current_actor
from collabtask.metrics import runtime_metrics

router = APIRouter(tags=["system"])


@router.get("/health")
async def health() -> dict:
  return {"ok": True}


@router.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@router.get("/system/metrics")
async def metrics(actor: Actor = Depends(get_current_actor)) -> dict:
  require_admin(actor)
  return {
    "startedAt": runtime_metrics.started_at.isoformat(),
    **runtime_metrics.snapshot(),
  }
