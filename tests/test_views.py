from __future__ import annotations

from datetime import date, timedelta

import pytest
from httpx import AsyncClient

from conftest import register_admin_and_user


@pytest.mark.anyio
async def test_board_view_groups_by_column(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)
  p = (await client.post("/api/projects", json={"title": "Board"}, headers=member)).json()
  await client.post("/api/tasks", json={"title": "a", "projectId": p["id"], "column": "backlog"}, headers=member)
  await client.post("/api/tasks", json={"title": "b", "projectId": p["id"], "column": "done"}, headers=member)
  await client.post("/api/tasks", json={"title": "c", "projectId": p["id"]}, headers=member)

  r = await client.get(f"/api/views/board/{p['id']}", headers=member)
  assert r.status_code == 200, r.text
  body = r.json()
  assert body["project"]["id"] == p["id"]
  assert list(body["columns"].keys()) == ["backlog", "todo", "in-progress", "done"]
  assert [t["title"] for t in body["columns"]["backlog"]] == ["a"]
  assert [t["title"] for t in body["columns"]["todo"]] == ["c"]
  assert body["columns"]["in-progress"] == []
  assert [t["title"] for t in body["columns"]["done"]] == ["b"]


@pytest.mark.anyio
async def test_daily_view_uses_due_and_completion_dates(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)
  today = date.today()
  p = (await client.post("/api/projects", json={"title": "Daily"}, headers=member)).json()
  await client.post("/api/tasks", json={"title": "urgent", "dueDate": today.isoformat(), "priority": "p1"}, headers=member)
  await client.post("/api/tasks", json={"title": "plan", "dueDate": today.isoformat(), "priority": "p2", "projectId": p["id"]}, headers=member)
  await client.post("/api/tasks", json={"title": "tomorrow", "dueDate": (today + timedelta(days=1)).isoformat()}, headers=member)

  r = await client.get("/api/views/daily", params={"date": today.isoformat()}, headers=member)
  assert r.status_code == 200, r.text
  body = r.json()
  assert body["date"] == today.isoformat()
  assert [t["title"] for t in body["quadrants"]["p1"]] == ["urgent"]
  assert [t["title"] for t in body["quadrants"]["p2"]] == ["plan"]
  assert body["quadrants"]["p3"] == [] and body["quadrants"]["p4"] == []

  standalone = (await client.get("/api/views/daily", params={"date": today.isoformat(), "scope": "standalone"}, headers=member)).json()
  assert standalone["quadrants"]["p2"] == []

  r = await client.get("/api/views/daily", params={"date": "nope"}, headers=member)
  assert r.status_code == 400


@pytest.mark.anyio
async def test_calendar_view_flags_overdue(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)
  await client.post("/api/tasks", json={"title": "late", "dueDate": "2020-02-10"}, headers=member)
  await client.post("/api/tasks", json={"title": "finished", "dueDate": "2020-02-10", "column": "done"}, headers=member)
  await client.post("/api/tasks", json={"title": "march", "dueDate": "2020-03-01"}, headers=member)

  r = await client.get("/api/views/calendar", params={"year": 2020, "month": 2}, headers=member)
  assert r.status_code == 200, r.text
  days = r.json()["days"]
  assert list(days.keys()) == ["2020-02-10"]
  flags = {t["title"]: t["overdue"] for t in days["2020-02-10"]}
  assert flags == {"late": True, "finished": False}

  assert (await client.get("/api/views/calendar", params={"year": 2020, "month": 13}, headers=member)).status_code == 422
