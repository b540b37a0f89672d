"""
Field-level write policy for tasks.

Two users hold rights over a task at once:

- the creator may change any field, reassign, and delete;
- the assignee may change `status` and nothing else.

Everything here is synchronous and works on immutable snapshots, so the
decision can be exercised without a database. Callers fetch the task, ask
`authorize_update` / `authorize_delete`, and only then write.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from taskpulse.errors import Forbidden, ValidationError
from taskpulse.models import Task


class _Unset:
  _instance: _Unset | None = None

  def __new__(cls) -> _Unset:
    if cls._instance is None:
      cls._instance = super().__new__(cls)
    return cls._instance

  def __repr__(self) -> str:
    return "UNSET"

  def __bool__(self) -> bool:
    return False


UNSET: Any = _Unset()

# attribute name -> public field name used by the API, audit entries and notifications
FIELD_NAMES: dict[str, str] = {
  "title": "title",
  "description": "description",
  "due_date": "dueDate",
  "priority": "priority",
  "status": "status",
  "assigned_to_id": "assignedToId",
}
_ATTRS_BY_FIELD = {v: k for k, v in FIELD_NAMES.items()}
_REQUIRED = {"title", "due_date", "priority", "status"}

COMPLETED = "Completed"


class TaskRole(str, Enum):
  CREATOR = "creator"
  ASSIGNEE = "assignee"


@dataclass(frozen=True)
class TaskSnapshot:
  id: str
  title: str
  description: str | None
  due_date: datetime
  priority: str
  status: str
  creator_id: str
  assigned_to_id: str | None
  version: int = 0

  @classmethod
  def of(cls, task: Task) -> TaskSnapshot:
    return cls(
      id=task.id,
      title=task.title,
      description=task.description,
      due_date=task.due_date,
      priority=task.priority,
      status=task.status,
      creator_id=task.creator_id,
      assigned_to_id=task.assigned_to_id,
      version=int(task.version or 0),
    )

  def apply(self, patch: TaskPatch) -> TaskSnapshot:
    return replace(self, **patch.present())


@dataclass(frozen=True)
class TaskPatch:
  """
  Proposed changes to a task. Every field is tri-state:

  - `UNSET`: not proposing to touch it
  - `None`: proposing to clear it (only description and assignee may be cleared)
  - a value: proposing to set it
  """

  title: Any = UNSET
  description: Any = UNSET
  due_date: Any = UNSET
  priority: Any = UNSET
  status: Any = UNSET
  assigned_to_id: Any = UNSET

  @classmethod
  def from_fields(cls, values: Mapping[str, Any]) -> TaskPatch:
    """Build from public field names (`dueDate`, `assignedToId`, ...). Unknown keys are rejected."""
    kwargs: dict[str, Any] = {}
    problems: dict[str, str] = {}
    for name, value in values.items():
      attr = _ATTRS_BY_FIELD.get(name)
      if attr is None:
        problems[name] = "Unknown field"
        continue
      if value is None and attr in _REQUIRED:
        problems[name] = "Field cannot be null"
        continue
      kwargs[attr] = value
    if problems:
      raise ValidationError("Invalid task update", fields=problems)
    return cls(**kwargs)

  def present(self) -> dict[str, Any]:
    return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}

  def proposed_fields(self) -> set[str]:
    return {FIELD_NAMES[name] for name in self.present()}

  def is_empty(self) -> bool:
    return not self.present()


@dataclass(frozen=True)
class AuthorizedUpdate:
  role: TaskRole
  patch: TaskPatch
  previous: TaskSnapshot


def role_for(task: TaskSnapshot, actor_id: str) -> TaskRole | None:
  # A creator who assigned the task to themselves keeps full rights.
  if task.creator_id == actor_id:
    return TaskRole.CREATOR
  if task.assigned_to_id is not None and task.assigned_to_id == actor_id:
    return TaskRole.ASSIGNEE
  return None


def authorize_update(task: TaskSnapshot, actor_id: str, patch: TaskPatch) -> AuthorizedUpdate:
  role = role_for(task, actor_id)
  if role is None:
    raise Forbidden("Not authorized to update this task")
  if role is TaskRole.ASSIGNEE:
    proposed = patch.proposed_fields()
    if proposed != {"status"}:
      raise Forbidden("Assignee can only update task status")
    return AuthorizedUpdate(role=role, patch=TaskPatch(status=patch.status), previous=task)
  return AuthorizedUpdate(role=role, patch=patch, previous=task)


def authorize_delete(task: TaskSnapshot, actor_id: str) -> TaskRole:
  if role_for(task, actor_id) is not TaskRole.CREATOR:
    raise Forbidden("Not authorized to delete this task")
  return TaskRole.CREATOR
