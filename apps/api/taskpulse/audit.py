from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.db import SessionLocal
from taskpulse.models import AuditEvent, User, as_utc
from taskpulse.tasks.policy import FIELD_NAMES, TaskSnapshot

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("taskpulse.audit")


@dataclass(frozen=True)
class FieldChange:
  field: str
  old_value: Any
  new_value: Any

  def as_dict(self) -> dict[str, Any]:
    return {"field": self.field, "oldValue": self.old_value, "newValue": self.new_value}


def _comparable(value: Any) -> Any:
  if isinstance(value, datetime):
    return as_utc(value)
  return value


def values_equal(old: Any, new: Any) -> bool:
  return _comparable(old) == _comparable(new)


def diff_snapshots(before: TaskSnapshot, after: TaskSnapshot) -> list[FieldChange]:
  changes: list[FieldChange] = []
  for attr, name in FIELD_NAMES.items():
    old, new = getattr(before, attr), getattr(after, attr)
    if not values_equal(old, new):
      changes.append(FieldChange(field=name, old_value=old, new_value=new))
  return changes


def action_for(changes: list[FieldChange]) -> str:
  return "STATUS_CHANGED" if any(c.field == "status" for c in changes) else "UPDATED"


async def write_audit(
  *,
  action: str,
  task_id: str,
  task_title: str,
  actor: User | None,
  changes: list[FieldChange] | None = None,
  session_factory: Callable[[], AsyncSession] = SessionLocal,
) -> None:
  """
  Append one audit row in its own session and commit. Failures are logged, never raised.

  The caller's session is never touched, so a failed write cannot expire the
  task or user objects the caller is still holding.
  """
  safe_changes = jsonable_encoder([c.as_dict() for c in changes]) if changes else None
  ev = AuditEvent(
    actor_id=actor.id if actor else None,
    actor_email=actor.email if actor else None,
    action=action,
    task_id=task_id,
    task_title=task_title,
    changes=safe_changes,
  )
  try:
    async with session_factory() as db:
      db.add(ev)
      await db.commit()
  except Exception:
    logger.exception("audit write failed: action=%s task=%s", action, task_id)
    return
  audit_logger.info(
    json.dumps(
      {
        "timestamp": ev.created_at.isoformat() if ev.created_at else None,
        "actorId": ev.actor_id,
        "actorEmail": ev.actor_email,
        "action": action,
        "taskId": task_id,
        "taskTitle": task_title,
        "changes": safe_changes,
      }
    )
  )


async def audit_task_created(*, actor: User, task: TaskSnapshot) -> None:
  await write_audit(action="CREATED", task_id=task.id, task_title=task.title, actor=actor)


async def audit_task_updated(*, actor: User, task: TaskSnapshot, changes: list[FieldChange]) -> None:
  # No-op updates leave no trace.
  if not changes:
    return
  await write_audit(action=action_for(changes), task_id=task.id, task_title=task.title, actor=actor, changes=changes)


async def audit_task_deleted(*, actor: User, task: TaskSnapshot) -> None:
  await write_audit(action="DELETED", task_id=task.id, task_title=task.title, actor=actor)
