from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from taskpulse.config import settings
from taskpulse.deps import get_current_user
from taskpulse.metrics import request_metrics
from taskpulse.models import User
from taskpulse.notifications.service import WebSocketHub

router = APIRouter(tags=["system"])


@router.get("/health")
async def health() -> dict:
  return {"ok": True}


@router.get("/version")
async def version() -> dict:
  return {"version": settings.app_version, "buildSha": settings.build_sha}


@router.get("/system/metrics")
async def system_metrics(request: Request, user: User = Depends(get_current_user)) -> dict:
  out = request_metrics.snapshot()
  channel = getattr(request.app.state, "channel", None)
  out["realtimeConnections"] = channel.connection_count() if isinstance(channel, WebSocketHub) else 0
  return out
