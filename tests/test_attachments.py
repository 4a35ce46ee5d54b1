from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.db import SessionLocal
from geminiflow.models import Attachment
from geminiflow.storage import decode_original_filename

from conftest import register_admin_and_user, upload_dir


async def _attachment_rows() -> int:
  async with SessionLocal() as db:
    return int((await db.execute(select(func.count(Attachment.id)))).scalar_one())


def _stored_files() -> set[str]:
  root = upload_dir()
  return {p.name for p in root.iterdir()} if root.exists() else set()


@pytest.mark.anyio
async def test_upload_list_download_delete(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)
  t = (await client.post("/api/tasks", json={"title": "Contract"}, headers=member)).json()

  r = await client.post(
    f"/api/attachments/task/{t['id']}",
    files={"file": ("contract.pdf", b"%PDF-1.4 test", "application/pdf")},
    headers=member,
  )
  assert r.status_code == 201, r.text
  a = r.json()
  assert a["originalName"] == "contract.pdf"
  assert a["size"] == len(b"%PDF-1.4 test")
  assert a["filename"].endswith(".pdf")
  assert a["filename"] in _stored_files()

  listed = (await client.get(f"/api/attachments/task/{t['id']}", headers=member)).json()
  assert [x["id"] for x in listed] == [a["id"]]

  dl = await client.get(f"/api/attachments/download/{a['id']}", headers=member)
  assert dl.status_code == 200
  assert dl.content == b"%PDF-1.4 test"
  assert "contract.pdf" in dl.headers["content-disposition"]

  assert (await client.delete(f"/api/attachments/{a['id']}", headers=member)).status_code == 200
  assert a["filename"] not in _stored_files()
  assert (await client.get(f"/api/attachments/download/{a['id']}", headers=member)).status_code == 404


@pytest.mark.anyio
async def test_upload_check_order(client: AsyncClient) -> None:
  admin, member = await register_admin_and_user(client)
  t = (await client.post("/api/tasks", json={"title": "Docs"}, headers=member)).json()
  before = _stored_files()

  r = await client.post("/api/attachments/task/999999", files={"file": ("evil.exe", b"MZ", "application/octet-stream")}, headers=member)
  assert r.status_code == 404

  r = await client.post(f"/api/attachments/task/{t['id']}", headers=member)
  assert r.status_code == 400

  r = await client.post(f"/api/attachments/task/{t['id']}", files={"file": ("evil.exe", b"MZ", "application/octet-stream")}, headers=member)
  assert r.status_code == 415

  await client.put("/api/settings", json={"maxFileSize": 1}, headers=admin)
  big = b"a" * (1024 * 1024 + 1)
  r = await client.post(f"/api/attachments/task/{t['id']}", files={"file": ("big.zip", big, "application/zip")}, headers=member)
  assert r.status_code == 413

  assert await _attachment_rows() == 0
  assert _stored_files() == before


@pytest.mark.anyio
async def test_attachments_are_private(client: AsyncClient) -> None:
  admin, member = await register_admin_and_user(client)
  t = (await client.post("/api/tasks", json={"title": "Mine"}, headers=member)).json()
  a = (await client.post(f"/api/attachments/task/{t['id']}", files={"file": ("a.png", b"png", "image/png")}, headers=member)).json()

  assert (await client.get(f"/api/attachments/task/{t['id']}", headers=admin)).status_code == 404
  assert (await client.get(f"/api/attachments/download/{a['id']}", headers=admin)).status_code == 404
  assert (await client.delete(f"/api/attachments/{a['id']}", headers=admin)).status_code == 404


@pytest.mark.anyio
async def test_deleting_task_removes_attachments(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)
  t = (await client.post("/api/tasks", json={"title": "Temp"}, headers=member)).json()
  a = (await client.post(f"/api/attachments/task/{t['id']}", files={"file": ("a.png", b"png", "image/png")}, headers=member)).json()

  assert (await client.delete(f"/api/tasks/{t['id']}", headers=member)).status_code == 200
  assert await _attachment_rows() == 0
  assert a["filename"] not in _stored_files()


@pytest.mark.anyio
async def test_mojibake_filename_is_recovered(client: AsyncClient) -> None:
  _, member = await register_admin_and_user(client)
  t = (await client.post("/api/tasks", json={"title": "CV"}, headers=member)).json()
  garbled = "résumé.pdf".encode("utf-8").decode("latin-1")

  r = await client.post(f"/api/attachments/task/{t['id']}", files={"file": (garbled, b"pdf", "application/pdf")}, headers=member)
  assert r.status_code == 201, r.text
  assert r.json()["originalName"] == "résumé.pdf"


def test_decode_original_filename_keeps_clean_names() -> None:
  assert decode_original_filename("report.pdf") == "report.pdf"
  assert decode_original_filename("报告.pdf") == "报告.pdf"
  assert decode_original_filename("Ã©.txt") == "é.txt"


@pytest.mark.anyio
async def test_failed_commit_keeps_stored_files(client: AsyncClient, monkeypatch) -> None:
  _, member = await register_admin_and_user(client)
  t = (await client.post("/api/tasks", json={"title": "Invoices"}, headers=member)).json()
  r = await client.post(f"/api/attachments/task/{t['id']}", files={"file": ("inv.pdf", b"%PDF", "application/pdf")}, headers=member)
  a = r.json()

  async def _failing_commit(self) -> None:
    raise RuntimeError("database went away")

  monkeypatch.setattr(AsyncSession, "commit", _failing_commit)
  with pytest.raises(RuntimeError):
    await client.delete(f"/api/attachments/{a['id']}", headers=member)
  with pytest.raises(RuntimeError):
    await client.delete(f"/api/tasks/{t['id']}", headers=member)
  monkeypatch.undo()

  assert a["filename"] in _stored_files()
  assert await _attachment_rows() == 1
  dl = await client.get(f"/api/attachments/download/{a['id']}", headers=member)
  assert dl.status_code == 200
