from __future__ import annotations

from datetime import datetime, timedelta, timezone

from passlib.context import CryptContext

from taskpulse.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.bcrypt_rounds)

SESSION_COOKIE_NAME = "tp_session"


def hash_password(password: str) -> str:
  return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
  return pwd_context.verify(password, password_hash)


def normalize_email(email: str | None) -> str:
  return (email or "").strip().lower()


def looks_like_email(email: str) -> bool:
  if "@" not in email or email.startswith("@") or email.endswith("@"):
    return False
  return "." in email.rsplit("@", 1)[1]


def new_session_expires_at() -> datetime:
  return datetime.now(timezone.utc) + timedelta(days=max(1, int(settings.session_ttl_days)))
