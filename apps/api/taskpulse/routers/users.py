from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskpulse.deps import get_current_user, get_db
from taskpulse.models import User
from taskpulse.routers.auth import user_out
from taskpulse.schemas import UserOut, UserSummaryOut, UserUpdateIn
from taskpulse.security import hash_password, looks_like_email, normalize_email

router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserSummaryOut])
async def list_users(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[UserSummaryOut]:
  res = await db.execute(select(User).order_by(User.name.asc()))
  return [UserSummaryOut(id=u.id, name=u.name, email=u.email) for u in res.scalars().all()]


@router.get("/me", response_model=UserOut)
async def get_profile(user: User = Depends(get_current_user)) -> UserOut:
  return user_out(user)


@router.patch("/me", response_model=UserOut)
async def update_profile(payload: UserUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UserOut:
  fields_set = payload.model_fields_set

  if "email" in fields_set and payload.email is not None:
    email = normalize_email(payload.email)
    if not looks_like_email(email):
      raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid email")
    if email != user.email:
      res = await db.execute(select(User.id).where(User.email == email))
      if res.scalar_one_or_none():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already in use")
      user.email = email
  if "name" in fields_set and payload.name is not None:
    user.name = payload.name.strip()
  if "password" in fields_set and payload.password:
    user.password_hash = hash_password(payload.password)

  await db.commit()
  return user_out(user)
