from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.config import settings
from taskpulse.db import SessionLocal
from taskpulse.errors import Forbidden, NotFound
from taskpulse.models import Notification, utcnow
from taskpulse.notifications.service import DeliveryChannel, NullDeliveryChannel
from taskpulse.tasks.policy import COMPLETED, TaskRole, TaskSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
  user_id: str
  type: str
  title: str
  message: str
  data: dict[str, Any] = field(default_factory=dict)


def events_for_created(task: TaskSnapshot, *, creator_name: str | None) -> list[NotificationEvent]:
  if not task.assigned_to_id:
    return []
  return [_assigned_event(task, task.assigned_to_id, assigned_by=creator_name)]


def events_for_update(
  before: TaskSnapshot,
  after: TaskSnapshot,
  *,
  role: TaskRole,
  creator_name: str | None = None,
  assignee_name: str | None = None,
) -> list[NotificationEvent]:
  out: list[NotificationEvent] = []
  if role is TaskRole.CREATOR and after.assigned_to_id and after.assigned_to_id != before.assigned_to_id:
    out.append(_assigned_event(after, after.assigned_to_id, assigned_by=creator_name))
  # Only completion by the assignee reaches the creator; a creator closing their own task is silent.
  if role is TaskRole.ASSIGNEE and after.status == COMPLETED and before.status != COMPLETED:
    out.append(
      NotificationEvent(
        user_id=after.creator_id,
        type="TaskCompleted",
        title="Task Completed",
        message=f'"{after.title}" has been completed by {assignee_name or "the assignee"}',
        data={"taskId": after.id, "taskTitle": after.title, "completedBy": assignee_name},
      )
    )
  return out


def events_for_delete(task: TaskSnapshot) -> list[NotificationEvent]:
  if not task.assigned_to_id:
    return []
  return [
    NotificationEvent(
      user_id=task.assigned_to_id,
      type="TaskDeleted",
      title="Task Deleted",
      message=f'The task "{task.title}" has been deleted',
      data={"taskId": task.id, "taskTitle": task.title},
    )
  ]


def _assigned_event(task: TaskSnapshot, user_id: str, *, assigned_by: str | None) -> NotificationEvent:
  return NotificationEvent(
    user_id=user_id,
    type="TaskAssigned",
    title="New Task Assigned",
    message=f'You have been assigned: "{task.title}"',
    data={
      "taskId": task.id,
      "taskTitle": task.title,
      "priority": task.priority,
      "dueDate": task.due_date.isoformat() if task.due_date else None,
      "assignedBy": assigned_by,
    },
  )


def notification_payload(n: Notification) -> dict[str, Any]:
  return {
    "id": n.id,
    "userId": n.user_id,
    "type": n.type,
    "title": n.title,
    "message": n.message,
    "data": n.data or {},
    "read": bool(n.read),
    "createdAt": n.created_at,
  }


class NotificationEngine:
  """
  Persists notification events and hands them to the delivery channel.

  Persistence comes first and is what makes a notification durable; the
  channel push is best effort. Neither step raises into the task mutation
  that produced the event: inserts and their retention prune run in a
  session from `session_factory`, never in the caller's `db`.
  """

  def __init__(
    self,
    db: AsyncSession,
    channel: DeliveryChannel | None = None,
    *,
    retention: int | None = None,
    missed_window_days: int | None = None,
    session_factory: Callable[[], AsyncSession] = SessionLocal,
  ) -> None:
    self.db = db
    self.session_factory = session_factory
    self.channel: DeliveryChannel = channel if channel is not None else NullDeliveryChannel()
    self.retention = int(retention if retention is not None else settings.notification_retention)
    self.missed_window = timedelta(days=int(missed_window_days if missed_window_days is not None else settings.missed_notification_window_days))

  async def notify(self, events: list[NotificationEvent]) -> list[dict[str, Any]]:
    stored: list[dict[str, Any]] = []
    for ev in events:
      payload = await self._persist(ev)
      if payload is None:
        continue
      stored.append(payload)
      await self.publish(ev.user_id, "notification", payload)
    return stored

  async def _persist(self, ev: NotificationEvent) -> dict[str, Any] | None:
    """Store one event in a session of its own and return its wire payload, or None when the insert failed."""
    n = Notification(user_id=ev.user_id, type=ev.type, title=ev.title, message=ev.message, data=ev.data, read=False)
    async with self.session_factory() as db:
      try:
        db.add(n)
        await db.commit()
      except Exception:
        logger.exception("failed to persist %s notification for user=%s", ev.type, ev.user_id)
        await db.rollback()
        return None
      payload = notification_payload(n)
      try:
        await self._prune(db, ev.user_id)
        await db.commit()
      except Exception:
        logger.exception("retention prune failed for user=%s", ev.user_id)
        await db.rollback()
    return payload

  async def publish(self, user_id: str, event: str, payload: Any) -> None:
    try:
      await self.channel.publish(user_id, event, payload)
    except Exception:
      logger.exception("delivery of %s to user=%s failed", event, user_id)

  async def broadcast(self, event: str, payload: Any) -> None:
    try:
      await self.channel.broadcast(event, payload)
    except Exception:
      logger.exception("broadcast of %s failed", event)

  async def _newest(self, db: AsyncSession, user_id: str) -> list[Notification]:
    res = await db.execute(
      select(Notification)
      .where(Notification.user_id == user_id)
      .order_by(Notification.created_at.desc())
      .limit(self.retention)
    )
    return list(res.scalars().all())

  async def _prune(self, db: AsyncSession, user_id: str, keep: list[Notification] | None = None) -> int:
    keep = keep if keep is not None else await self._newest(db, user_id)
    if len(keep) < self.retention:
      return 0
    res = await db.execute(
      delete(Notification)
      .where(Notification.user_id == user_id, Notification.id.not_in([n.id for n in keep]))
      .execution_options(synchronize_session=False)
    )
    pruned = int(res.rowcount or 0)
    if pruned:
      logger.debug("pruned %d notifications for user=%s", pruned, user_id)
    return pruned

  async def list_notifications(self, user_id: str) -> list[Notification]:
    """Newest first, at most `retention` rows. Deletes anything older as a side effect."""
    rows = await self._newest(self.db, user_id)
    await self._prune(self.db, user_id, rows)
    await self.db.commit()
    return rows

  async def mark_as_read(self, notification_id: str, actor_id: str) -> Notification:
    res = await self.db.execute(select(Notification).where(Notification.id == notification_id))
    n = res.scalar_one_or_none()
    if not n:
      raise NotFound("Notification not found")
    if n.user_id != actor_id:
      raise Forbidden("Not authorized")
    if not n.read:
      n.read = True
      await self.db.commit()
    return n

  async def mark_all_read(self, actor_id: str) -> int:
    res = await self.db.execute(
      update(Notification)
      .where(Notification.user_id == actor_id, Notification.read.is_(False))
      .values(read=True)
      .execution_options(synchronize_session=False)
    )
    await self.db.commit()
    return int(res.rowcount or 0)

  async def missed(self, user_id: str, *, now: datetime | None = None) -> list[Notification]:
    """Unread notifications inside the catch-up window, newest first."""
    cutoff = (now or utcnow()) - self.missed_window
    res = await self.db.execute(
      select(Notification)
      .where(Notification.user_id == user_id, Notification.read.is_(False), Notification.created_at >= cutoff)
      .order_by(Notification.created_at.desc())
    )
    return list(res.scalars().all())
