from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.models import AuditEvent

# Never persisted into audit payloads.
_REDACTED_KEYS = frozenset({"password", "apiKey", "api_key", "token"})


def _scrub(payload: dict[str, Any]) -> dict[str, Any]:
  return {k: ("***" if k in _REDACTED_KEYS else v) for k, v in payload.items()}


async def write_audit(
  db: AsyncSession,
  *,
  event_type: str,
  entity_type: str,
  entity_id: int | str | None,
  actor_id: int | None = None,
  payload: dict[str, Any] | None = None,
) -> AuditEvent:
  """Stage an audit row on the caller's session; the caller's commit persists it."""
  event = AuditEvent(
    actor_id=actor_id,
    event_type=event_type,
    entity_type=entity_type,
    entity_id=None if entity_id is None else str(entity_id),
    payload=jsonable_encoder(_scrub(payload or {})),
  )
  db.add(event)
  return event
