from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import field_validator

Priority = Literal["Low", "Medium", "High", "Urgent"]
Status = Literal["ToDo", "InProgress", "Review", "Completed"]
NotificationType = Literal["TaskAssigned", "TaskUpdated", "TaskCompleted", "TaskDeleted"]
AuditAction = Literal["CREATED", "UPDATED", "DELETED", "STATUS_CHANGED"]

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_dt_utc(value: object) -> object:
  # Date-only strings mean midnight UTC; naive datetimes are taken as UTC.
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      dt = datetime.fromisoformat(s)
    else:
      dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


class UserSummaryOut(BaseModel):
  id: str
  name: str
  email: str


class UserOut(UserSummaryOut):
  createdAt: datetime


class RegisterIn(BaseModel):
  name: str = Field(min_length=2, max_length=120)
  email: str = Field(min_length=3, max_length=320)
  password: str = Field(min_length=6, max_length=200)


class LoginIn(BaseModel):
  email: str = Field(min_length=3, max_length=320)
  password: str = Field(min_length=1, max_length=200)


class UserUpdateIn(BaseModel):
  name: str | None = Field(default=None, min_length=2, max_length=120)
  email: str | None = Field(default=None, min_length=3, max_length=320)
  password: str | None = Field(default=None, min_length=6, max_length=200)


class TaskCreateIn(BaseModel):
  title: str = Field(min_length=1, max_length=100)
  description: str | None = Field(default=None, max_length=5000)
  dueDate: datetime
  priority: Priority = "Medium"
  status: Status = "ToDo"
  assignedToId: str | None = Field(default=None, min_length=1, max_length=36)

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  """Sparse update: only keys present in the request body are proposed changes."""

  title: str | None = Field(default=None, min_length=1, max_length=100)
  description: str | None = Field(default=None, max_length=5000)
  dueDate: datetime | None = None
  priority: Priority | None = None
  status: Status | None = None
  assignedToId: str | None = Field(default=None, min_length=1, max_length=36)
  version: int | None = Field(default=None, ge=0)

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskOut(BaseModel):
  id: str
  title: str
  description: str | None = None
  dueDate: datetime
  priority: Priority
  status: Status
  creatorId: str
  assignedToId: str | None = None
  creator: UserSummaryOut | None = None
  assignedTo: UserSummaryOut | None = None
  version: int
  createdAt: datetime
  updatedAt: datetime


class NotificationOut(BaseModel):
  id: str
  userId: str
  type: NotificationType
  title: str
  message: str
  data: dict[str, Any] = Field(default_factory=dict)
  read: bool
  createdAt: datetime


class MarkAllReadOut(BaseModel):
  updated: int


class AuditChangeOut(BaseModel):
  field: str
  oldValue: Any = None
  newValue: Any = None


class AuditOut(BaseModel):
  id: str
  timestamp: datetime
  actorId: str | None = None
  actorEmail: str | None = None
  action: AuditAction
  taskId: str
  taskTitle: str
  changes: list[AuditChangeOut] | None = None
