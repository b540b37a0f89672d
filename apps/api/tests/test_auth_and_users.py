from __future__ import annotations

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from taskpulse.config import settings
from taskpulse.db import SessionLocal
from taskpulse.models import Session, utcnow
from tests.conftest import PASSWORD, login, register


@pytest.mark.anyio
async def test_register_login_logout_cycle(client: AsyncClient) -> None:
  me = await register(client, "  Cora Creator ", "Cora@Example.com")
  assert me["name"] == "Cora Creator"
  assert me["email"] == "cora@example.com"

  who = await client.get("/auth/me")
  assert who.status_code == 200, who.text
  assert who.json()["id"] == me["id"]

  out = await client.post("/auth/logout")
  assert out.status_code == 200
  assert (await client.get("/auth/me")).status_code == 401

  again = await login(client, "CORA@example.com")
  assert again["id"] == me["id"]
  assert (await client.get("/users/me")).json()["email"] == "cora@example.com"


@pytest.mark.anyio
async def test_register_rejects_bad_input(client: AsyncClient) -> None:
  short_pw = await client.post("/auth/register", json={"name": "Cora", "email": "cora@example.com", "password": "123"})
  assert short_pw.status_code == 422
  bad_email = await client.post("/auth/register", json={"name": "Cora", "email": "cora.example.com", "password": PASSWORD})
  assert bad_email.status_code == 422
  short_name = await client.post("/auth/register", json={"name": " C ", "email": "cora@example.com", "password": PASSWORD})
  assert short_name.status_code == 422

  await register(client, "Cora Creator", "cora@example.com")
  dup = await client.post("/auth/register", json={"name": "Other", "email": "CORA@example.com", "password": PASSWORD})
  assert dup.status_code == 409
  assert dup.json()["detail"] == "User already exists with this email"


@pytest.mark.anyio
async def test_login_wrong_password(client: AsyncClient) -> None:
  await register(client, "Cora Creator", "cora@example.com")
  await client.post("/auth/logout")
  res = await client.post("/auth/login", json={"email": "cora@example.com", "password": "wrong-password"})
  assert res.status_code == 401
  assert res.json()["detail"] == "Invalid email or password"


@pytest.mark.anyio
async def test_expired_session_is_rejected(client: AsyncClient) -> None:
  await register(client, "Cora Creator", "cora@example.com")
  async with SessionLocal() as db:
    await db.execute(update(Session).values(expires_at=utcnow() - timedelta(minutes=1)))
    await db.commit()
  res = await client.get("/auth/me")
  assert res.status_code == 401
  assert res.json()["detail"] == "Session expired"


@pytest.mark.anyio
async def test_bearer_token_authenticates(client: AsyncClient, other_client: AsyncClient) -> None:
  me = await register(client, "Cora Creator", "cora@example.com")
  token = client.cookies.get("tp_session")
  res = await other_client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
  assert res.status_code == 200, res.text
  assert res.json()["id"] == me["id"]


@pytest.mark.anyio
async def test_users_directory_and_profile_update(client: AsyncClient, other_client: AsyncClient) -> None:
  await register(client, "Zoe Zed", "zoe@example.com")
  await register(other_client, "Abe Able", "abe@example.com")

  users = (await client.get("/users")).json()
  assert [u["name"] for u in users] == ["Abe Able", "Zoe Zed"]
  assert set(users[0]) == {"id", "name", "email"}

  taken = await client.patch("/users/me", json={"email": "abe@example.com"})
  assert taken.status_code == 409
  assert taken.json()["detail"] == "Email already in use"

  upd = await client.patch("/users/me", json={"name": "Zoe Zimmer", "password": "new-secret"})
  assert upd.status_code == 200, upd.text
  assert upd.json()["name"] == "Zoe Zimmer"

  await client.post("/auth/logout")
  await login(client, "zoe@example.com", "new-secret")


@pytest.mark.anyio
async def test_login_rate_limited(client: AsyncClient) -> None:
  orig_ip = settings.rate_limit_login_ip_per_minute
  orig_email = settings.rate_limit_login_email_per_minute
  settings.rate_limit_login_ip_per_minute = 3
  settings.rate_limit_login_email_per_minute = 3
  try:
    for _ in range(3):
      r = await client.post("/auth/login", json={"email": "nobody@example.com", "password": "bad"})
      assert r.status_code == 401, r.text
    r = await client.post("/auth/login", json={"email": "nobody@example.com", "password": "bad"})
    assert r.status_code == 429, r.text
    assert r.headers.get("retry-after")
  finally:
    settings.rate_limit_login_ip_per_minute = orig_ip
    settings.rate_limit_login_email_per_minute = orig_email
