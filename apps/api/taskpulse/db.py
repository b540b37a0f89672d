from __future__ import annotations

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from taskpulse.config import settings
from taskpulse.models import Base

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def create_schema() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
