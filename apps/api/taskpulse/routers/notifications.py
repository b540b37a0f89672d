from __future__ import annotations

from fastapi import APIRouter, Depends

from taskpulse.deps import get_current_user, get_notifier
from taskpulse.models import Notification, User
from taskpulse.notifications.events import NotificationEngine
from taskpulse.schemas import MarkAllReadOut, NotificationOut

router = APIRouter(prefix="/notifications", tags=["notifications"])


def notification_out(n: Notification) -> NotificationOut:
  return NotificationOut(
    id=n.id,
    userId=n.user_id,
    type=n.type,
    title=n.title,
    message=n.message,
    data=n.data or {},
    read=bool(n.read),
    createdAt=n.created_at,
  )


@router.get("", response_model=list[NotificationOut])
async def list_notifications(
  user: User = Depends(get_current_user),
  notifier: NotificationEngine = Depends(get_notifier),
) -> list[NotificationOut]:
  return [notification_out(n) for n in await notifier.list_notifications(user.id)]


@router.patch("/{notification_id}/read", response_model=NotificationOut)
async def mark_notification_read(
  notification_id: str,
  user: User = Depends(get_current_user),
  notifier: NotificationEngine = Depends(get_notifier),
) -> NotificationOut:
  return notification_out(await notifier.mark_as_read(notification_id, user.id))


@router.post("/read-all", response_model=MarkAllReadOut)
async def mark_all_read(
  user: User = Depends(get_current_user),
  notifier: NotificationEngine = Depends(get_notifier),
) -> MarkAllReadOut:
  return MarkAllReadOut(updated=await notifier.mark_all_read(user.id))
