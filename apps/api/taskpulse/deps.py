from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.db import SessionLocal
from taskpulse.models import Session as DbSession, User
from taskpulse.notifications.events import NotificationEngine
from taskpulse.notifications.service import DeliveryChannel, NullDeliveryChannel
from taskpulse.security import SESSION_COOKIE_NAME
from taskpulse.tasks.service import TaskService


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


def session_id_from(request_cookie: str | None, authorization: str | None) -> str | None:
  if request_cookie:
    return request_cookie
  if authorization and authorization.lower().startswith("bearer "):
    token = authorization.split(" ", 1)[1].strip()
    return token or None
  return None


async def user_for_session(db: AsyncSession, session_id: str | None) -> User:
  if not session_id:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
  res = await db.execute(select(DbSession).where(DbSession.id == session_id))
  s = res.scalar_one_or_none()
  if not s:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")
  if s.expires_at < datetime.now(timezone.utc):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Session expired")
  ures = await db.execute(select(User).where(User.id == s.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  return u


async def get_current_user(
  request: Request,
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> User:
  return await user_for_session(db, session_id_from(session_id, request.headers.get("authorization")))


def get_channel(request: Request) -> DeliveryChannel:
  return getattr(request.app.state, "channel", None) or NullDeliveryChannel()


def get_notifier(db: AsyncSession = Depends(get_db), channel: DeliveryChannel = Depends(get_channel)) -> NotificationEngine:
  return NotificationEngine(db, channel)


def get_task_service(db: AsyncSession = Depends(get_db), notifier: NotificationEngine = Depends(get_notifier)) -> TaskService:
  return TaskService(db, notifier)


def client_ip(request: Request) -> str | None:
  return request.client.host if request.client else None
