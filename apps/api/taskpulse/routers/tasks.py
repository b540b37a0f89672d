from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends

from taskpulse.deps import get_current_user, get_task_service
from taskpulse.models import User
from taskpulse.schemas import Priority, Status, TaskCreateIn, TaskOut, TaskUpdateIn
from taskpulse.tasks.policy import TaskPatch
from taskpulse.tasks.service import TaskService, task_out

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=TaskOut, status_code=201)
async def create_task(
  payload: TaskCreateIn,
  user: User = Depends(get_current_user),
  tasks: TaskService = Depends(get_task_service),
) -> TaskOut:
  return await tasks.create_task(user, payload)


@router.get("", response_model=list[TaskOut])
async def list_tasks(
  status: Status | None = None,
  priority: Priority | None = None,
  sort: Literal["asc", "desc"] | None = None,
  user: User = Depends(get_current_user),
  tasks: TaskService = Depends(get_task_service),
) -> list[TaskOut]:
  return [task_out(t) for t in await tasks.list_tasks(status=status, priority=priority, sort=sort)]


@router.get("/assigned", response_model=list[TaskOut])
async def my_assigned_tasks(user: User = Depends(get_current_user), tasks: TaskService = Depends(get_task_service)) -> list[TaskOut]:
  return [task_out(t) for t in await tasks.assigned_to(user.id)]


@router.get("/created", response_model=list[TaskOut])
async def my_created_tasks(user: User = Depends(get_current_user), tasks: TaskService = Depends(get_task_service)) -> list[TaskOut]:
  return [task_out(t) for t in await tasks.created_by(user.id)]


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(task_id: str, user: User = Depends(get_current_user), tasks: TaskService = Depends(get_task_service)) -> TaskOut:
  return task_out(await tasks.get(task_id))


@router.patch("/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  user: User = Depends(get_current_user),
  tasks: TaskService = Depends(get_task_service),
) -> TaskOut:
  proposed = {name: getattr(payload, name) for name in payload.model_fields_set if name != "version"}
  patch = TaskPatch.from_fields(proposed)
  return await tasks.update_task(task_id, user, patch, expected_version=payload.version)


@router.delete("/{task_id}")
async def delete_task(task_id: str, user: User = Depends(get_current_user), tasks: TaskService = Depends(get_task_service)) -> dict:
  await tasks.delete_task(task_id, user)
  return {"ok": True}
