from __future__ import annotations

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from taskpulse.audit import write_audit
from taskpulse.db import SessionLocal
from taskpulse.models import Task
from taskpulse.notifications.events import NotificationEvent
from taskpulse.tasks import service as task_service
from taskpulse.tasks.service import TaskService
from tests.conftest import create_task, register


def _unstorable_events(before, after, **_):
  # title is NOT NULL, so the insert fails inside the notification engine.
  return [NotificationEvent(user_id=after.creator_id, type="TaskCompleted", title=None, message="m")]


@pytest.mark.anyio
async def test_failed_notification_insert_keeps_the_update(client, other_client, monkeypatch) -> None:
  await register(client, "Cora Creator", "cora@example.com")
  abe = await register(other_client, "Abe Assignee", "abe@example.com")
  task = await create_task(client, title="Persist me", assignedToId=abe["id"])

  monkeypatch.setattr(task_service, "events_for_update", _unstorable_events)
  res = await other_client.patch(f"/tasks/{task['id']}", json={"status": "Completed"})
  assert res.status_code == 200, res.text
  assert res.json()["status"] == "Completed"
  assert res.json()["version"] == task["version"] + 1

  assert (await client.get(f"/tasks/{task['id']}")).json()["status"] == "Completed"
  assert (await client.get("/notifications")).json() == []
  actions = [e["action"] for e in (await client.get("/audit", params={"taskId": task["id"]})).json()]
  assert actions == ["STATUS_CHANGED", "CREATED"]


@pytest.mark.anyio
async def test_failed_audit_write_keeps_the_update(client, monkeypatch) -> None:
  await register(client, "Cora Creator", "cora@example.com")
  task = await create_task(client, title="Before")

  async def _untitled_audit(*, actor, task, changes):
    await write_audit(action="UPDATED", task_id=task.id, task_title=None, actor=actor, changes=changes)

  monkeypatch.setattr(task_service, "audit_task_updated", _untitled_audit)
  res = await client.patch(f"/tasks/{task['id']}", json={"title": "After"})
  assert res.status_code == 200, res.text
  assert res.json()["title"] == "After"
  assert res.json()["creator"]["email"] == "cora@example.com"

  actions = [e["action"] for e in (await client.get("/audit", params={"taskId": task["id"]})).json()]
  assert actions == ["CREATED"]


@pytest.mark.anyio
async def test_failed_audit_write_keeps_the_create(client, other_client, monkeypatch) -> None:
  await register(client, "Cora Creator", "cora@example.com")
  abe = await register(other_client, "Abe Assignee", "abe@example.com")

  async def _untitled_audit(*, actor, task):
    await write_audit(action="CREATED", task_id=task.id, task_title=None, actor=actor)

  monkeypatch.setattr(task_service, "audit_task_created", _untitled_audit)
  task = await create_task(client, title="Still here", assignedToId=abe["id"])

  assert (await client.get(f"/tasks/{task['id']}")).status_code == 200
  assert [n["type"] for n in (await other_client.get("/notifications")).json()] == ["TaskAssigned"]
  assert (await client.get("/audit", params={"taskId": task["id"]})).json() == []


@pytest.mark.anyio
async def test_concurrent_write_is_not_credited_to_the_actor(client, other_client, monkeypatch) -> None:
  await register(client, "Cora Creator", "cora@example.com")
  abe = await register(other_client, "Abe Assignee", "abe@example.com")
  task = await create_task(client, title="Original", assignedToId=abe["id"])

  original_get = TaskService.get
  calls = []

  async def get_after_foreign_write(self, task_id):
    calls.append(task_id)
    if len(calls) == 2:
      # Another writer renames the task between this update's commit and its re-read.
      async with SessionLocal() as db:
        await db.execute(update(Task).where(Task.id == task_id).values(title="Renamed by creator"))
        await db.commit()
    return await original_get(self, task_id)

  monkeypatch.setattr(TaskService, "get", get_after_foreign_write)
  res = await other_client.patch(f"/tasks/{task['id']}", json={"status": "Completed"})
  monkeypatch.undo()
  assert res.status_code == 200, res.text
  assert res.json()["title"] == "Renamed by creator"

  [entry] = [e for e in (await client.get("/audit", params={"taskId": task["id"]})).json() if e["action"] != "CREATED"]
  assert entry["actorEmail"] == "abe@example.com"
  assert entry["taskTitle"] == "Original"
  assert entry["changes"] == [{"field": "status", "oldValue": "ToDo", "newValue": "Completed"}]

  [done] = (await client.get("/notifications")).json()
  assert done["message"] == '"Original" has been completed by Abe Assignee'


@pytest.mark.anyio
async def test_store_failure_is_a_generic_internal_error(client, monkeypatch) -> None:
  await register(client, "Cora Creator", "cora@example.com")

  async def _broken_list(self, **_):
    raise OperationalError("SELECT tasks", {}, Exception("disk I/O error"))

  monkeypatch.setattr(TaskService, "list_tasks", _broken_list)
  res = await client.get("/tasks")
  assert res.status_code == 500
  assert res.json() == {"detail": "Internal error"}
