from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.deps import get_db, require_admin
from geminiflow.models import AuditEvent, User
from geminiflow.schemas import AuditOut
from geminiflow.serializers import audit_out

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("", response_model=list[AuditOut])
async def list_audit(
  limit: int = Query(default=200, ge=1, le=1000),
  eventType: str | None = None,
  _: User = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
  q = select(AuditEvent).order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(limit)
  if eventType:
    q = q.where(AuditEvent.event_type == eventType)
  res = await db.execute(q)
  return [audit_out(ev) for ev in res.scalars().all()]
