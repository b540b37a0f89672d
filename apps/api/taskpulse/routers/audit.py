from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.deps import get_current_user, get_db
from taskpulse.models import AuditEvent, User
from taskpulse.schemas import AuditChangeOut, AuditOut

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditOut])
async def list_audit(
  taskId: str | None = None,
  actorId: str | None = None,
  limit: int = Query(default=200, ge=1, le=1000),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
  q = select(AuditEvent)
  if taskId:
    q = q.where(AuditEvent.task_id == taskId)
  if actorId:
    q = q.where(AuditEvent.actor_id == actorId)
  res = await db.execute(q.order_by(AuditEvent.created_at.desc()).limit(limit))
  out = []
  for ev in res.scalars().all():
    out.append(
      AuditOut(
        id=ev.id,
        timestamp=ev.created_at,
        actorId=ev.actor_id,
        actorEmail=ev.actor_email,
        action=ev.action,
        taskId=ev.task_id,
        taskTitle=ev.task_title,
        changes=[AuditChangeOut(**c) for c in ev.changes] if ev.changes else None,
      )
    )
  return out
