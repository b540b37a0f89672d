from __future__ import annotations

import pytest

from tests.conftest import create_task, register


@pytest.mark.anyio
async def test_create_task_defaults_and_creator(client) -> None:
  me = await register(client, "Cora Creator", "cora@example.com")
  task = await create_task(client, title="Draft plan")

  assert task["creatorId"] == me["id"]
  assert task["creator"] == {"id": me["id"], "name": "Cora Creator", "email": "cora@example.com"}
  assert task["priority"] == "Medium"
  assert task["status"] == "ToDo"
  assert task["assignedToId"] is None
  assert task["version"] == 0
  # Date-only due dates mean midnight UTC.
  assert task["dueDate"].startswith("2030-01-15T00:00:00")


@pytest.mark.anyio
async def test_create_task_validation(client) -> None:
  await register(client, "Cora Creator", "cora@example.com")

  too_long = await client.post("/tasks", json={"title": "x" * 101, "dueDate": "2030-01-15"})
  assert too_long.status_code == 422

  bad_priority = await client.post("/tasks", json={"title": "ok", "dueDate": "2030-01-15", "priority": "P0"})
  assert bad_priority.status_code == 422

  missing_due = await client.post("/tasks", json={"title": "ok"})
  assert missing_due.status_code == 422

  ghost = await client.post("/tasks", json={"title": "ok", "dueDate": "2030-01-15", "assignedToId": "nobody"})
  assert ghost.status_code == 422
  assert ghost.json()["detail"][0]["loc"] == ["body", "assignedToId"]


@pytest.mark.anyio
async def test_list_filters_and_sorting(client, other_client) -> None:
  await register(client, "Cora Creator", "cora@example.com")
  other = await register(other_client, "Abe Assignee", "abe@example.com")

  await create_task(client, title="Later", dueDate="2030-03-01", priority="Low")
  await create_task(client, title="Sooner", dueDate="2030-01-01", priority="High", assignedToId=other["id"])
  await create_task(client, title="Middle", dueDate="2030-02-01", priority="High", status="Review")

  newest_first = [t["title"] for t in (await client.get("/tasks")).json()]
  assert newest_first == ["Middle", "Sooner", "Later"]

  asc = [t["title"] for t in (await client.get("/tasks", params={"sort": "asc"})).json()]
  assert asc == ["Sooner", "Middle", "Later"]
  desc = [t["title"] for t in (await client.get("/tasks", params={"sort": "desc"})).json()]
  assert desc == ["Later", "Middle", "Sooner"]

  high = [t["title"] for t in (await client.get("/tasks", params={"priority": "High", "sort": "asc"})).json()]
  assert high == ["Sooner", "Middle"]
  review = [t["title"] for t in (await client.get("/tasks", params={"status": "Review"})).json()]
  assert review == ["Middle"]

  assert (await client.get("/tasks", params={"status": "Done"})).status_code == 422

  # Task lists are shared across users.
  assert len((await other_client.get("/tasks")).json()) == 3


@pytest.mark.anyio
async def test_assigned_and_created_views(client, other_client) -> None:
  await register(client, "Cora Creator", "cora@example.com")
  other = await register(other_client, "Abe Assignee", "abe@example.com")

  await create_task(client, title="Mine only")
  await create_task(client, title="For Abe, late", dueDate="2030-05-01", assignedToId=other["id"])
  await create_task(client, title="For Abe, soon", dueDate="2030-04-01", assignedToId=other["id"])

  assigned = [t["title"] for t in (await other_client.get("/tasks/assigned")).json()]
  assert assigned == ["For Abe, soon", "For Abe, late"]
  assert (await other_client.get("/tasks/created")).json() == []

  created = [t["title"] for t in (await client.get("/tasks/created")).json()]
  assert created == ["For Abe, soon", "For Abe, late", "Mine only"]
  assert (await client.get("/tasks/assigned")).json() == []
