from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from geminiflow import rate_limit
from geminiflow.config import settings
from geminiflow.security import create_access_token

from conftest import auth_headers, register


@pytest.mark.anyio
async def test_first_registration_becomes_admin_then_users(client: AsyncClient) -> None:
  r = await client.get("/api/auth/has-users")
  assert r.json() == {"hasUsers": False}

  first = await register(client, "alice")
  assert first["user"]["role"] == "admin"
  assert first["token"]

  second = await register(client, "bob")
  assert second["user"]["role"] == "user"

  r = await client.get("/api/auth/has-users")
  assert r.json() == {"hasUsers": True}


@pytest.mark.anyio
async def test_register_validation(client: AsyncClient) -> None:
  r = await client.post("/api/auth/register", json={"username": "x", "password": "secret123"})
  assert r.status_code == 400, r.text

  r = await client.post("/api/auth/register", json={"username": "x", "password": "123", "email": "x@example.com"})
  assert r.status_code == 400, r.text

  await register(client, "alice")
  r = await client.post("/api/auth/register", json={"username": "alice", "password": "secret123", "email": "other@example.com"})
  assert r.status_code == 400, r.text
  r = await client.post("/api/auth/register", json={"username": "other", "password": "secret123", "email": "alice@example.com"})
  assert r.status_code == 400, r.text


@pytest.mark.anyio
async def test_registration_can_be_disabled_after_first_user(client: AsyncClient) -> None:
  admin = await register(client, "alice")
  r = await client.put("/api/settings", json={"allowRegistration": False}, headers=auth_headers(admin["token"]))
  assert r.status_code == 200, r.text

  r = await client.post("/api/auth/register", json={"username": "bob", "password": "secret123", "email": "bob@example.com"})
  assert r.status_code == 403, r.text


@pytest.mark.anyio
async def test_login_and_me(client: AsyncClient) -> None:
  await register(client, "alice", password="secret123")

  r = await client.post("/api/auth/login", json={"username": "alice", "password": "wrong-pass"})
  assert r.status_code == 401, r.text

  r = await client.post("/api/auth/login", json={"username": "alice", "password": "secret123"})
  assert r.status_code == 200, r.text
  token = r.json()["token"]

  me = await client.get("/api/auth/me", headers=auth_headers(token))
  assert me.status_code == 200, me.text
  assert me.json()["username"] == "alice"
  assert me.json()["role"] == "admin"


@pytest.mark.anyio
async def test_token_errors(client: AsyncClient) -> None:
  r = await client.get("/api/auth/me")
  assert r.status_code == 401
  assert r.json()["detail"] == "Not authenticated"

  r = await client.get("/api/auth/me", headers=auth_headers("not-a-jwt"))
  assert r.status_code == 401
  assert r.json()["detail"] == "Invalid token"

  user = await register(client, "alice")
  expired = create_access_token(
    user_id=user["user"]["id"],
    role="admin",
    now=datetime.now(timezone.utc) - timedelta(days=settings.token_ttl_days + 1),
  )
  r = await client.get("/api/auth/me", headers=auth_headers(expired))
  assert r.status_code == 401
  assert r.json()["detail"] == "Invalid token"

  ghost = create_access_token(user_id=999999, role="admin")
  r = await client.get("/api/auth/me", headers=auth_headers(ghost))
  assert r.status_code == 401


@pytest.mark.anyio
async def test_login_rate_limited(client: AsyncClient) -> None:
  orig_ip = settings.rate_limit_login_ip_per_minute
  orig_user = settings.rate_limit_login_username_per_minute
  settings.rate_limit_login_ip_per_minute = 100
  settings.rate_limit_login_username_per_minute = 3
  try:
    for _ in range(3):
      r = await client.post("/api/auth/login", json={"username": "nobody", "password": "bad"})
      assert r.status_code == 401, r.text
    r = await client.post("/api/auth/login", json={"username": "nobody", "password": "bad"})
    assert r.status_code == 429, r.text
    assert r.headers.get("retry-after")
  finally:
    settings.rate_limit_login_ip_per_minute = orig_ip
    settings.rate_limit_login_username_per_minute = orig_user


def test_expired_login_buckets_are_evicted(monkeypatch) -> None:
  clock = [1000.0]
  monkeypatch.setattr(rate_limit.time, "time", lambda: clock[0])
  limiter = rate_limit.RateLimiter()
  for i in range(50):
    assert limiter.hit(f"auth:user:spray{i}", limit=5, window_seconds=60) == (True, 0)
  assert len(limiter._buckets) == 50

  clock[0] += 61 + rate_limit.SWEEP_INTERVAL_SECONDS
  assert limiter.hit("auth:user:alice", limit=5, window_seconds=60) == (True, 0)
  assert list(limiter._buckets) == ["auth:user:alice"]
