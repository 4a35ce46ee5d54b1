from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.config import settings
from geminiflow.db import engine
from geminiflow.deps import get_db, require_admin
from geminiflow.metrics import runtime_metrics
from geminiflow.models import AIChannel, Attachment, Project, Task, User
from geminiflow.rate_limit import limiter
from geminiflow.schemas import SystemStatusOut

logger = logging.getLogger("geminiflow.system")

router = APIRouter(prefix="/system", tags=["admin"])

_COUNTED = {"users": User, "projects": Project, "tasks": Task, "attachments": Attachment, "channels": AIChannel}


@router.get("/status", response_model=SystemStatusOut)
async def system_status(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> SystemStatusOut:
  counts: dict[str, int] = {}
  try:
    await db.execute(text("SELECT 1"))
    for key, model in _COUNTED.items():
      counts[key] = int((await db.execute(select(func.count(model.id)))).scalar_one())
    db_ok = True
  except SQLAlchemyError as exc:
    logger.warning("database check failed: %s", exc)
    db_ok = False
  return SystemStatusOut(
    generatedAt=datetime.now(timezone.utc),
    version=settings.app_version,
    buildSha=settings.build_sha,
    database=engine.dialect.name,
    databaseOk=db_ok,
    rateLimitBackend=limiter.backend,
    counts=counts,
    runtime=runtime_metrics.snapshot(),
  )
