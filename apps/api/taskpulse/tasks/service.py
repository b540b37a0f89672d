from __future__ import annotations

import logging
from dataclasses import replace

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.audit import audit_task_created, audit_task_deleted, audit_task_updated, diff_snapshots, values_equal
from taskpulse.errors import Conflict, NotFound, ValidationError
from taskpulse.models import Task, User, utcnow
from taskpulse.notifications.events import NotificationEngine, events_for_created, events_for_delete, events_for_update
from taskpulse.schemas import TaskCreateIn, TaskOut, UserSummaryOut
from taskpulse.tasks.policy import TaskPatch, TaskSnapshot, authorize_delete, authorize_update

logger = logging.getLogger(__name__)


def _user_summary(u: User | None) -> UserSummaryOut | None:
  if u is None:
    return None
  return UserSummaryOut(id=u.id, name=u.name, email=u.email)


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    title=t.title,
    description=t.description,
    dueDate=t.due_date,
    priority=t.priority,
    status=t.status,
    creatorId=t.creator_id,
    assignedToId=t.assigned_to_id,
    creator=_user_summary(t.creator),
    assignedTo=_user_summary(t.assigned_to),
    version=t.version,
    createdAt=t.created_at,
    updatedAt=t.updated_at,
  )


class TaskService:
  """
  Task mutations in a fixed order: fetch snapshot, authorize, commit, diff,
  notify, audit. The response is built right after the commit, and notify
  and audit write through their own sessions, so nothing after the commit
  can fail the request.
  """

  def __init__(self, db: AsyncSession, notifier: NotificationEngine) -> None:
    self.db = db
    self.notifier = notifier

  async def get(self, task_id: str) -> Task:
    res = await self.db.execute(select(Task).where(Task.id == task_id).execution_options(populate_existing=True))
    t = res.scalar_one_or_none()
    if not t:
      raise NotFound("Task not found")
    return t

  async def list_tasks(self, *, status: str | None = None, priority: str | None = None, sort: str | None = None) -> list[Task]:
    q = select(Task)
    if status:
      q = q.where(Task.status == status)
    if priority:
      q = q.where(Task.priority == priority)
    if sort == "desc":
      q = q.order_by(Task.due_date.desc())
    elif sort == "asc":
      q = q.order_by(Task.due_date.asc())
    else:
      q = q.order_by(Task.created_at.desc())
    res = await self.db.execute(q)
    return list(res.scalars().all())

  async def assigned_to(self, user_id: str) -> list[Task]:
    res = await self.db.execute(select(Task).where(Task.assigned_to_id == user_id).order_by(Task.due_date.asc()))
    return list(res.scalars().all())

  async def created_by(self, user_id: str) -> list[Task]:
    res = await self.db.execute(select(Task).where(Task.creator_id == user_id).order_by(Task.created_at.desc()))
    return list(res.scalars().all())

  async def _require_user(self, user_id: str) -> None:
    res = await self.db.execute(select(User.id).where(User.id == user_id))
    if not res.scalar_one_or_none():
      raise ValidationError("Invalid assignedToId", fields={"assignedToId": "User not found"})

  async def create_task(self, actor: User, payload: TaskCreateIn) -> TaskOut:
    if payload.assignedToId:
      await self._require_user(payload.assignedToId)

    t = Task(
      title=payload.title,
      description=payload.description,
      due_date=payload.dueDate,
      priority=payload.priority,
      status=payload.status,
      creator_id=actor.id,
      assigned_to_id=payload.assignedToId or None,
    )
    self.db.add(t)
    await self.db.commit()
    t = await self.get(t.id)
    snap = TaskSnapshot.of(t)
    out = task_out(t)
    logger.info("task created id=%s by=%s assignee=%s", t.id, actor.id, t.assigned_to_id)

    wire = out.model_dump(mode="json")
    await self.notifier.broadcast("task:created", wire)
    await self.notifier.notify(events_for_created(snap, creator_name=actor.name))
    if snap.assigned_to_id:
      await self.notifier.publish(snap.assigned_to_id, "task:assigned", wire)
    await audit_task_created(actor=actor, task=snap)
    return out

  async def update_task(self, task_id: str, actor: User, patch: TaskPatch, *, expected_version: int | None = None) -> TaskOut:
    current = await self.get(task_id)
    before = TaskSnapshot.of(current)
    decision = authorize_update(before, actor.id, patch)
    if expected_version is not None and expected_version != before.version:
      raise Conflict("Version conflict")

    values = {k: v for k, v in decision.patch.present().items() if not values_equal(getattr(before, k), v)}
    if not values:
      return task_out(current)
    if values.get("assigned_to_id"):
      await self._require_user(values["assigned_to_id"])

    stmt = update(Task).where(Task.id == task_id)
    if expected_version is not None:
      stmt = stmt.where(Task.version == expected_version)
    res = await self.db.execute(
      stmt.values(**values, version=Task.version + 1, updated_at=utcnow()).execution_options(synchronize_session=False)
    )
    if not res.rowcount:
      await self.db.rollback()
      if expected_version is not None:
        raise Conflict("Version conflict")
      raise NotFound("Task not found")
    await self.db.commit()

    # What this actor wrote. The re-read row may already carry other writers' changes.
    after = replace(before.apply(TaskPatch(**values)), version=before.version + 1)
    changes = diff_snapshots(before, after)
    current = await self.get(task_id)
    out = task_out(current)
    creator_name = current.creator.name if current.creator else None
    logger.info("task updated id=%s by=%s role=%s fields=%s", task_id, actor.id, decision.role.value, [c.field for c in changes])

    wire = out.model_dump(mode="json")
    await self.notifier.broadcast("task:updated", wire)
    await self.notifier.notify(
      events_for_update(before, after, role=decision.role, creator_name=creator_name, assignee_name=actor.name)
    )
    if after.assigned_to_id and after.assigned_to_id != before.assigned_to_id:
      await self.notifier.publish(after.assigned_to_id, "task:assigned", wire)
    await audit_task_updated(actor=actor, task=after, changes=changes)
    return out

  async def delete_task(self, task_id: str, actor: User) -> None:
    current = await self.get(task_id)
    before = TaskSnapshot.of(current)
    authorize_delete(before, actor.id)

    res = await self.db.execute(delete(Task).where(Task.id == task_id).execution_options(synchronize_session=False))
    if not res.rowcount:
      await self.db.rollback()
      raise NotFound("Task not found")
    await self.db.commit()
    self.db.expunge(current)
    logger.info("task deleted id=%s by=%s", task_id, actor.id)

    await self.notifier.broadcast("task:deleted", {"taskId": task_id})
    await self.notifier.notify(events_for_delete(before))
    await audit_task_deleted(actor=actor, task=before)
