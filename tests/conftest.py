from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import delete

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

_TMP = Path(tempfile.mkdtemp(prefix="geminiflow-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP / 'geminiflow_test.db'}"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ.pop("REDIS_URL", None)

from geminiflow.config import settings
from geminiflow.db import SessionLocal, create_all, database_name, engine
from geminiflow.main import app
from geminiflow.models import AIChannel, Attachment, AuditEvent, Project, SiteSettings, Task, User
from geminiflow.rate_limit import limiter


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  limiter.reset_prefix("auth:")
  await create_all()
  async with SessionLocal() as db:
    await db.execute(delete(Attachment))
    await db.execute(delete(Task))
    await db.execute(delete(Project))
    await db.execute(delete(AIChannel))
    await db.execute(delete(SiteSettings))
    await db.execute(delete(AuditEvent))
    await db.execute(delete(User))
    await db.commit()
  await engine.dispose()


@pytest.fixture(autouse=True)
async def _clean_between_tests(anyio_backend: str) -> None:
  if "test" not in database_name():
    raise RuntimeError("Refusing to run destructive tests against a non-test database.")
  await _reset_db()
  yield
  await _reset_db()


@pytest.fixture
async def client() -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def register(client: AsyncClient, username: str, password: str = "secret123", email: str | None = None) -> dict:
  res = await client.post(
    "/api/auth/register",
    json={"username": username, "password": password, "email": email or f"{username}@example.com"},
  )
  assert res.status_code == 201, res.text
  return res.json()


def auth_headers(token: str) -> dict[str, str]:
  return {"Authorization": f"Bearer {token}"}


async def register_admin_and_user(client: AsyncClient) -> tuple[dict[str, str], dict[str, str]]:
  admin = await register(client, "admin")
  member = await register(client, "member")
  return auth_headers(admin["token"]), auth_headers(member["token"])


def upload_dir() -> Path:
  return Path(settings.upload_dir)
