from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete, select

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./taskpulse_test.db")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from taskpulse.config import settings
from taskpulse.db import SessionLocal, create_schema, engine
from taskpulse.main import app
from taskpulse.models import AuditEvent, Notification, Session, Task, User
from taskpulse.rate_limit import limiter

from tests.fakes import RecordingChannel

PASSWORD = "secret123"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  await create_schema()
  async with SessionLocal() as db:
    await db.execute(delete(AuditEvent))
    await db.execute(delete(Notification))
    await db.execute(delete(Task))
    await db.execute(delete(Session))
    await db.execute(delete(User))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests() -> None:
  if not settings.is_test_db():
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. taskpulse_test)."
    )
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
def channel() -> RecordingChannel:
  previous = app.state.channel
  recording = RecordingChannel()
  app.state.channel = recording
  yield recording
  app.state.channel = previous


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


@pytest.fixture
async def other_client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


@pytest.fixture
async def third_client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def register(client: AsyncClient, name: str, email: str, password: str = PASSWORD) -> dict:
  res = await client.post("/auth/register", json={"name": name, "email": email, "password": password})
  assert res.status_code == 201, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "tp_session=" in cookie
  return res.json()


async def login(client: AsyncClient, email: str, password: str = PASSWORD) -> dict:
  res = await client.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  return res.json()


async def create_task(client: AsyncClient, **fields) -> dict:
  payload = {"title": "Write release notes", "dueDate": "2030-01-15", **fields}
  res = await client.post("/tasks", json=payload)
  assert res.status_code == 201, res.text
  return res.json()


async def user_id(email: str) -> str:
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    return res.scalar_one().id
