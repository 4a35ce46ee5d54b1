from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from geminiflow.config import settings
from geminiflow.models import Base


def _engine_kwargs() -> dict:
  if settings.is_sqlite():
    return {"connect_args": {"check_same_thread": False}}
  return {"pool_pre_ping": True}


engine = create_async_engine(settings.database_url, **_engine_kwargs())
SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


def database_name() -> str:
  url = make_url(settings.database_url)
  return Path(url.database or "").name


def ensure_sqlite_dir() -> None:
  if not settings.is_sqlite():
    return
  db_path = make_url(settings.database_url).database
  if db_path and db_path != ":memory:":
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)


async def create_all() -> None:
  ensure_sqlite_dir()
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)
