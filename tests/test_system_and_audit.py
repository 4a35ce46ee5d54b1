from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from conftest import register_admin_and_user
from geminiflow.deps import get_current_user
from geminiflow.main import app
from geminiflow.metrics import RequestMetrics, runtime_metrics


@pytest.mark.anyio
async def test_health_and_version(client: AsyncClient) -> None:
  r = await client.get("/health")
  assert r.json() == {"ok": True}
  assert r.headers["x-content-type-options"] == "nosniff"
  assert "version" in (await client.get("/version")).json()


@pytest.mark.anyio
async def test_system_status_is_admin_only(client: AsyncClient) -> None:
  admin, member = await register_admin_and_user(client)
  assert (await client.get("/api/system/status", headers=member)).status_code == 403

  r = await client.get("/api/system/status", headers=admin)
  assert r.status_code == 200, r.text
  body = r.json()
  assert body["databaseOk"] is True
  assert body["database"] == "sqlite"
  assert body["rateLimitBackend"] == "memory"
  assert body["counts"]["users"] == 2
  assert body["runtime"]["requestsLastHour"] >= 1


@pytest.mark.anyio
async def test_audit_records_business_events(client: AsyncClient) -> None:
  admin, member = await register_admin_and_user(client)
  p = (await client.post("/api/projects", json={"title": "Gone soon"}, headers=member)).json()
  await client.delete(f"/api/projects/{p['id']}", headers=member)
  await client.post("/api/auth/login", json={"username": "member", "password": "nope"})

  assert (await client.get("/api/audit", headers=member)).status_code == 403
  events = (await client.get("/api/audit", headers=admin)).json()
  types = [e["eventType"] for e in events]
  assert types[0] == "auth.login.failed"
  assert "project.deleted" in types
  assert types.count("auth.registered") == 2

  only = (await client.get("/api/audit", params={"eventType": "project.deleted"}, headers=admin)).json()
  assert len(only) == 1
  assert only[0]["payload"]["title"] == "Gone soon"


def test_request_metrics_counts_and_percentile() -> None:
  m = RequestMetrics()
  for ms in range(1, 21):
    m.record(200, float(ms))
  m.record(500, 3.0)
  m.record(429, 1.0)
  snap = m.snapshot()
  assert snap["requestsLastHour"] == 22
  assert snap["errorsLastHour"] == 1
  assert snap["rateLimitedLastHour"] == 1
  assert snap["p95LatencyMs"] == 19.0


@pytest.mark.anyio
async def test_unhandled_errors_are_counted_as_5xx() -> None:
  def _broken_user() -> None:
    raise RuntimeError("boom")

  before = runtime_metrics.snapshot()["errorsLastHour"]
  app.dependency_overrides[get_current_user] = _broken_user
  try:
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://localhost") as c:
      r = await c.get("/api/auth/me")
  finally:
    app.dependency_overrides.pop(get_current_user, None)
  assert r.status_code == 500
  assert r.json() == {"detail": "Internal server error"}
  assert runtime_metrics.snapshot()["errorsLastHour"] == before + 1
