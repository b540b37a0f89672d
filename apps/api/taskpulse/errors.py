from __future__ import annotations

from typing import Any


class TaskPulseError(Exception):
  status_code = 500

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message

  def detail(self) -> Any:
    return self.message


class ValidationError(TaskPulseError):
  """Malformed input caught before any store access; carries per-field messages."""

  status_code = 422

  def __init__(self, message: str, *, fields: dict[str, str] | None = None) -> None:
    super().__init__(message)
    self.fields = dict(fields or {})

  def detail(self) -> Any:
    return [{"loc": ["body", field], "msg": msg, "type": "value_error"} for field, msg in self.fields.items()] or self.message


class NotFound(TaskPulseError):
  status_code = 404


class Forbidden(TaskPulseError):
  status_code = 403


class Conflict(TaskPulseError):
  status_code = 409


class InternalError(TaskPulseError):
  status_code = 500
