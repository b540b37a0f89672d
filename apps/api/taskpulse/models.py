from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
  if value is None:
    return None
  if value.tzinfo is None:
    return value.replace(tzinfo=timezone.utc)
  return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
  """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo)."""

  impl = DateTime(timezone=True)
  cache_ok = True

  def process_bind_param(self, value, dialect):
    return as_utc(value)

  def process_result_value(self, value, dialect):
    return as_utc(value)


_ID = String(36)
_JSON = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(_ID, primary_key=True, default=_new_id)
  email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String(120), nullable=False)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)


class Session(Base):
  __tablename__ = "sessions"

  id: Mapped[str] = mapped_column(_ID, primary_key=True, default=_new_id)
  user_id: Mapped[str] = mapped_column(_ID, ForeignKey("users.id"), nullable=False, index=True)
  created_ip: Mapped[str | None] = mapped_column(String, nullable=True)
  user_agent: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(_ID, primary_key=True, default=_new_id)
  title: Mapped[str] = mapped_column(String(100), nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
  priority: Mapped[str] = mapped_column(String(16), nullable=False, default="Medium")
  status: Mapped[str] = mapped_column(String(16), nullable=False, default="ToDo", index=True)
  creator_id: Mapped[str] = mapped_column(_ID, ForeignKey("users.id"), nullable=False, index=True)
  assigned_to_id: Mapped[str | None] = mapped_column(_ID, ForeignKey("users.id"), nullable=True, index=True)
  version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

  creator: Mapped[User] = relationship(foreign_keys=[creator_id], lazy="joined")
  assigned_to: Mapped[User | None] = relationship(foreign_keys=[assigned_to_id], lazy="joined")


class Notification(Base):
  __tablename__ = "notifications"

  # No foreign key to tasks: a notification outlives the task it talks about.
  id: Mapped[str] = mapped_column(_ID, primary_key=True, default=_new_id)
  user_id: Mapped[str] = mapped_column(_ID, ForeignKey("users.id"), nullable=False, index=True)
  type: Mapped[str] = mapped_column(String(32), nullable=False)
  title: Mapped[str] = mapped_column(String, nullable=False)
  message: Mapped[str] = mapped_column(Text, nullable=False)
  data: Mapped[dict[str, Any]] = mapped_column(_JSON, nullable=False, default=dict)
  read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(_ID, primary_key=True, default=_new_id)
  actor_id: Mapped[str | None] = mapped_column(_ID, ForeignKey("users.id"), nullable=True)
  actor_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
  action: Mapped[str] = mapped_column(String(32), nullable=False)
  task_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
  task_title: Mapped[str] = mapped_column(String, nullable=False)
  changes: Mapped[list[dict[str, Any]] | None] = mapped_column(_JSON, nullable=True)
  created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False, index=True)
