from __future__ import annotations

import logging

from fastapi import APIRouter, Cookie, Depends, HTTPException, Request, Response, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.config import settings
from taskpulse.deps import client_ip, get_current_user, get_db
from taskpulse.models import Session as DbSession, User
from taskpulse.rate_limit import limiter
from taskpulse.schemas import LoginIn, RegisterIn, UserOut
from taskpulse.security import (
  SESSION_COOKIE_NAME,
  hash_password,
  looks_like_email,
  new_session_expires_at,
  normalize_email,
  verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def user_out(u: User) -> UserOut:
  return UserOut(id=u.id, name=u.name, email=u.email, createdAt=u.created_at)


def _rate_limit_or_429(*, key: str, limit: int, window_seconds: int = 60) -> None:
  allowed, retry_after = limiter.hit(key, limit=limit, window_seconds=window_seconds)
  if allowed:
    return
  raise HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail={"code": "rate_limited", "message": "Too many requests", "retryAfterSeconds": retry_after},
    headers={"Retry-After": str(retry_after)},
  )


async def _start_session(db: AsyncSession, request: Request, response: Response, u: User) -> None:
  s = DbSession(
    user_id=u.id,
    expires_at=new_session_expires_at(),
    created_ip=client_ip(request),
    user_agent=request.headers.get("user-agent"),
  )
  db.add(s)
  await db.commit()
  response.set_cookie(
    key=SESSION_COOKIE_NAME,
    value=s.id,
    httponly=True,
    secure=settings.cookie_secure,
    samesite="lax",
    domain=settings.cookie_domain,
    max_age=settings.session_ttl_days * 24 * 60 * 60,
    path="/",
  )


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  _rate_limit_or_429(key=f"auth:register:ip:{client_ip(request) or 'unknown'}", limit=int(settings.rate_limit_register_ip_per_minute))

  email = normalize_email(payload.email)
  if not looks_like_email(email):
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid email")
  name = payload.name.strip()
  if len(name) < 2:
    raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Name is too short")

  res = await db.execute(select(User).where(User.email == email))
  if res.scalar_one_or_none():
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists with this email")

  u = User(name=name, email=email, password_hash=hash_password(payload.password))
  db.add(u)
  await db.flush()
  await _start_session(db, request, response, u)
  logger.info("user registered id=%s", u.id)
  return user_out(u)


@router.post("/login", response_model=UserOut)
async def login(payload: LoginIn, request: Request, response: Response, db: AsyncSession = Depends(get_db)) -> UserOut:
  email = normalize_email(payload.email)
  _rate_limit_or_429(key=f"auth:login:ip:{client_ip(request) or 'unknown'}", limit=int(settings.rate_limit_login_ip_per_minute))
  if email:
    _rate_limit_or_429(key=f"auth:login:email:{email}", limit=int(settings.rate_limit_login_email_per_minute))

  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password, u.password_hash):
    logger.info("login failed email=%s ip=%s", email, client_ip(request))
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

  await _start_session(db, request, response, u)
  return user_out(u)


@router.post("/logout")
async def logout(
  response: Response,
  db: AsyncSession = Depends(get_db),
  session_id: str | None = Cookie(default=None, alias=SESSION_COOKIE_NAME),
) -> dict:
  if session_id:
    await db.execute(delete(DbSession).where(DbSession.id == session_id))
    await db.commit()
  response.delete_cookie(key=SESSION_COOKIE_NAME, path="/", domain=settings.cookie_domain)
  return {"ok": True}


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return user_out(user)
