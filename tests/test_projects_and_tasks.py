from __future__ import annotations

from datetime import date

import pytest
from httpx import AsyncClient

from conftest import register_admin_and_user


@pytest.mark.anyio
async def test_project_crud_and_stats(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)

  r = await client.post("/api/projects", json={"title": "  "}, headers=member)
  assert r.status_code == 400

  r = await client.post(
    "/api/projects",
    json={"title": "Launch", "description": "Q4 launch", "assignees": ["ana", " ", "ben"], "color": "#ff0000"},
    headers=member,
  )
  assert r.status_code == 201, r.text
  p = r.json()
  assert p["status"] == "active"
  assert p["startDate"] == date.today().isoformat()
  assert p["assignees"] == ["ana", "ben"]
  assert p["stats"] == {"total": 0, "done": 0}

  await client.post("/api/tasks", json={"title": "a", "projectId": p["id"]}, headers=member)
  await client.post("/api/tasks", json={"title": "b", "projectId": p["id"], "column": "done"}, headers=member)

  got = (await client.get(f"/api/projects/{p['id']}", headers=member)).json()
  assert got["stats"] == {"total": 2, "done": 1}

  r = await client.put(f"/api/projects/{p['id']}", json={"status": "completed", "archived": True, "endDate": "2026-12-31T00:00:00Z"}, headers=member)
  assert r.status_code == 200, r.text
  body = r.json()
  assert body["message"]
  assert body["project"]["status"] == "completed"
  assert body["project"]["endDate"] == "2026-12-31"
  assert body["project"]["description"] == "Q4 launch"

  other = (await client.post("/api/projects", json={"title": "Other"}, headers=member)).json()
  archived = (await client.get("/api/projects", params={"archived": "true"}, headers=member)).json()
  assert [x["id"] for x in archived] == [p["id"]]
  active = (await client.get("/api/projects", params={"archived": "false"}, headers=member)).json()
  assert [x["id"] for x in active] == [other["id"]]
  everything = (await client.get("/api/projects", headers=member)).json()
  assert [x["id"] for x in everything] == [other["id"], p["id"]]


@pytest.mark.anyio
async def test_projects_are_private(client: AsyncClient) -> None:
  admin, member = await register_admin_and_user(client)
  p = (await client.post("/api/projects", json={"title": "Mine"}, headers=member)).json()

  assert (await client.get(f"/api/projects/{p['id']}", headers=admin)).status_code == 404
  assert (await client.put(f"/api/projects/{p['id']}", json={"title": "x"}, headers=admin)).status_code == 404
  assert (await client.delete(f"/api/projects/{p['id']}", headers=admin)).status_code == 404
  r = await client.post("/api/tasks", json={"title": "sneaky", "projectId": p["id"]}, headers=admin)
  assert r.status_code == 404


@pytest.mark.anyio
async def test_delete_project_removes_its_tasks(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)
  p = (await client.post("/api/projects", json={"title": "Doomed"}, headers=member)).json()
  for i in range(3):
    await client.post("/api/tasks", json={"title": f"t{i}", "projectId": p["id"]}, headers=member)
  keep = (await client.post("/api/tasks", json={"title": "standalone"}, headers=member)).json()

  r = await client.delete(f"/api/projects/{p['id']}", headers=member)
  assert r.status_code == 200, r.text

  tasks = (await client.get("/api/tasks", headers=member)).json()
  assert [t["id"] for t in tasks] == [keep["id"]]
  assert (await client.get(f"/api/tasks/project/{p['id']}", headers=member)).status_code == 404


@pytest.mark.anyio
async def test_task_completion_timestamp_follows_column(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)

  t = (await client.post("/api/tasks", json={"title": "Write report"}, headers=member)).json()
  assert t["column"] == "todo"
  assert t["priority"] == "p2"
  assert t["completedAt"] is None
  assert t["createdAt"].endswith("Z")

  done = (await client.put(f"/api/tasks/{t['id']}", json={"column": "done"}, headers=member)).json()
  assert done["completedAt"] is not None

  # staying in done keeps the stamp
  again = (await client.put(f"/api/tasks/{t['id']}", json={"title": "Write final report"}, headers=member)).json()
  assert again["completedAt"] == done["completedAt"]

  back = (await client.put(f"/api/tasks/{t['id']}", json={"column": "in-progress"}, headers=member)).json()
  assert back["completedAt"] is None

  # a client supplied timestamp is ignored outside done
  r = await client.put(f"/api/tasks/{t['id']}", json={"completedAt": "2026-01-01T10:00:00Z"}, headers=member)
  assert r.json()["completedAt"] is None

  # entering done stamps the server time even when the client sends a value
  r = await client.put(f"/api/tasks/{t['id']}", json={"column": "done", "completedAt": "2001-01-01T00:00:00Z"}, headers=member)
  restamped = r.json()["completedAt"]
  assert not restamped.startswith("2001-01-01")
  assert restamped.endswith("Z")

  # while the task stays in done an explicit value is honoured
  r = await client.put(f"/api/tasks/{t['id']}", json={"column": "done", "completedAt": "2026-01-01T10:00:00Z"}, headers=member)
  assert r.json()["completedAt"] == "2026-01-01T10:00:00Z"

  created_done = (await client.post("/api/tasks", json={"title": "Already done", "column": "done"}, headers=member)).json()
  assert created_done["completedAt"] is not None


@pytest.mark.anyio
async def test_task_put_applies_only_present_fields(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)
  t = (
    await client.post(
      "/api/tasks",
      json={
        "title": "Plan",
        "description": "details",
        "dueDate": "2026-11-02",
        "priority": "p1",
        "tags": ["work"],
        "subtasks": [{"text": "one", "done": False}],
      },
      headers=member,
    )
  ).json()

  r = await client.put(f"/api/tasks/{t['id']}", json={"priority": "p3"}, headers=member)
  body = r.json()
  assert body["priority"] == "p3"
  assert body["description"] == "details"
  assert body["dueDate"] == "2026-11-02"
  assert body["tags"] == ["work"]
  assert body["subtasks"] == [{"text": "one", "done": False}]

  r = await client.put(f"/api/tasks/{t['id']}", json={"dueDate": None, "tags": []}, headers=member)
  assert r.json()["dueDate"] is None
  assert r.json()["tags"] == []

  assert (await client.put(f"/api/tasks/{t['id']}", json={"title": ""}, headers=member)).status_code == 400
  assert (await client.put(f"/api/tasks/{t['id']}", json={"column": "archive"}, headers=member)).status_code == 422


@pytest.mark.anyio
async def test_task_filters(client: AsyncClient) -> None:
  admin, member = await register_admin_and_user(client)
  p = (await client.post("/api/projects", json={"title": "P"}, headers=member)).json()
  in_project = (await client.post("/api/tasks", json={"title": "in", "projectId": p["id"], "dueDate": "2026-11-05"}, headers=member)).json()
  standalone = (await client.post("/api/tasks", json={"title": "out", "dueDate": "2026-11-06"}, headers=member)).json()
  await client.post("/api/tasks", json={"title": "admin task"}, headers=admin)

  def ids(res) -> list[int]:
    return [t["id"] for t in res.json()]

  assert ids(await client.get("/api/tasks", headers=member)) == [standalone["id"], in_project["id"]]
  assert ids(await client.get("/api/tasks", params={"scope": "project"}, headers=member)) == [in_project["id"]]
  assert ids(await client.get("/api/tasks", params={"scope": "standalone"}, headers=member)) == [standalone["id"]]
  assert ids(await client.get("/api/tasks", params={"projectId": p["id"]}, headers=member)) == [in_project["id"]]
  assert ids(await client.get("/api/tasks", params={"dueDate": "2026-11-06"}, headers=member)) == [standalone["id"]]
  assert ids(await client.get(f"/api/tasks/project/{p['id']}", headers=member)) == [in_project["id"]]

  assert (await client.get(f"/api/tasks/{in_project['id']}", headers=admin)).status_code == 404
  assert (await client.delete(f"/api/tasks/{standalone['id']}", headers=member)).status_code == 200
  assert (await client.get(f"/api/tasks/{standalone['id']}", headers=member)).status_code == 404
