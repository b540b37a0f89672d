from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Protocol

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class DeliveryChannel(Protocol):
  async def publish(self, user_id: str, event: str, payload: Any) -> None: ...

  async def broadcast(self, event: str, payload: Any) -> None: ...


class NullDeliveryChannel:
  """No realtime transport configured: every publish is a no-op."""

  async def publish(self, user_id: str, event: str, payload: Any) -> None:
    return None

  async def broadcast(self, event: str, payload: Any) -> None:
    return None


def envelope(event: str, payload: Any) -> dict[str, Any]:
  return {"event": event, "data": jsonable_encoder(payload)}


class WebSocketHub:
  """
  Per-user topics over WebSocket connections.

  A user may hold several connections (tabs, devices); each one joins the
  topic of the user it authenticated as. Publishing to a topic with no
  members is a no-op, and a connection that fails to receive is dropped.
  """

  def __init__(self) -> None:
    self._members: dict[str, set[WebSocket]] = defaultdict(set)

  def join(self, user_id: str, ws: WebSocket) -> None:
    self._members[user_id].add(ws)
    logger.info("channel join user=%s connections=%d", user_id, len(self._members[user_id]))

  def leave(self, user_id: str, ws: WebSocket) -> None:
    conns = self._members.get(user_id)
    if not conns:
      return
    conns.discard(ws)
    if not conns:
      del self._members[user_id]
    logger.info("channel leave user=%s", user_id)

  def connection_count(self, user_id: str | None = None) -> int:
    if user_id is not None:
      return len(self._members.get(user_id, ()))
    return sum(len(c) for c in self._members.values())

  async def publish(self, user_id: str, event: str, payload: Any) -> None:
    conns = list(self._members.get(user_id, ()))
    if not conns:
      return
    msg = envelope(event, payload)
    await asyncio.gather(*(self._send(user_id, ws, msg) for ws in conns))

  async def broadcast(self, event: str, payload: Any) -> None:
    targets = [(uid, ws) for uid, conns in list(self._members.items()) for ws in list(conns)]
    if not targets:
      return
    msg = envelope(event, payload)
    await asyncio.gather(*(self._send(uid, ws, msg) for uid, ws in targets))

  async def send_to(self, ws: WebSocket, event: str, payload: Any) -> None:
    await ws.send_json(envelope(event, payload))

  async def _send(self, user_id: str, ws: WebSocket, msg: dict[str, Any]) -> None:
    try:
      await ws.send_json(msg)
    except Exception as e:
      logger.warning("dropping socket for user=%s after send failure: %s", user_id, e)
      self.leave(user_id, ws)
