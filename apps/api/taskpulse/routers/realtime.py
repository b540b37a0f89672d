from __future__ import annotations

import json
import logging
from typing import Any, Callable

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.db import SessionLocal
from taskpulse.deps import session_id_from, user_for_session
from taskpulse.notifications.events import NotificationEngine, notification_payload
from taskpulse.notifications.service import WebSocketHub
from taskpulse.security import SESSION_COOKIE_NAME

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def send_missed(ws: WebSocket, user_id: str, hub: WebSocketHub, session_factory: Callable[[], AsyncSession]) -> int:
  """Replay unread notifications from the catch-up window as one batch. Returns how many were sent."""
  try:
    async with session_factory() as db:
      missed = await NotificationEngine(db, hub).missed(user_id)
  except Exception:
    logger.exception("missed-notification lookup failed for user=%s", user_id)
    return 0
  if not missed:
    return 0
  await hub.send_to(ws, "notifications:missed", [notification_payload(n) for n in missed])
  logger.info("sent %d missed notifications to user=%s", len(missed), user_id)
  return len(missed)


def _parse(raw: str) -> dict[str, Any]:
  try:
    msg = json.loads(raw)
  except ValueError:
    return {}
  return msg if isinstance(msg, dict) else {}


async def serve_user_channel(
  ws: WebSocket,
  user_id: str,
  hub: WebSocketHub,
  session_factory: Callable[[], AsyncSession] = SessionLocal,
) -> None:
  hub.join(user_id, ws)
  try:
    await send_missed(ws, user_id, hub, session_factory)
    while True:
      msg = _parse(await ws.receive_text())
      event = msg.get("event")
      if event == "join:user":
        await send_missed(ws, user_id, hub, session_factory)
      elif event == "ping":
        await hub.send_to(ws, "pong", {})
  except WebSocketDisconnect:
    pass
  finally:
    hub.leave(user_id, ws)


@router.websocket("/ws")
async def user_channel(websocket: WebSocket) -> None:
  hub: WebSocketHub = websocket.app.state.channel
  session_id = session_id_from(websocket.cookies.get(SESSION_COOKIE_NAME), websocket.headers.get("authorization"))
  async with SessionLocal() as db:
    try:
      user = await user_for_session(db, session_id)
    except HTTPException:
      await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
      return
  await websocket.accept()
  await serve_user_channel(websocket, user.id, hub)
