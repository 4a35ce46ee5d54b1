from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.ai.providers import AIProviderError, list_models
from geminiflow.ai.service import parse_model_ref, resolve_default_model
from geminiflow.audit import write_audit
from geminiflow.deps import get_current_user, get_db, load_site_settings, require_admin
from geminiflow.models import AIChannel, User
from geminiflow.schemas import (
  ChannelCreateIn,
  ChannelCreateOut,
  ChannelOut,
  ChannelUpdateIn,
  DefaultModelOut,
  FetchModelsOut,
  MessageOut,
  ModelChoiceOut,
  ModelRef,
)
from geminiflow.security import MASKED_SECRET, decrypt_channel_secret, encrypt_secret

logger = logging.getLogger("geminiflow.channels")

router = APIRouter(prefix="/channels", tags=["channels"])


def _models(raw: list | None) -> list[ModelRef]:
  out: list[ModelRef] = []
  for m in raw or []:
    if isinstance(m, dict) and m.get("id"):
      out.append(ModelRef(id=str(m["id"]), name=str(m.get("name") or m["id"])))
  return out


def _channel_out(ch: AIChannel) -> ChannelOut:
  return ChannelOut(
    id=ch.id,
    name=ch.name,
    type=ch.type,
    base_url=ch.base_url or "",
    api_key=MASKED_SECRET if ch.api_key_encrypted else "",
    models=_models(ch.models),
    enabled=bool(ch.enabled),
    created_at=ch.created_at,
  )


async def _channel_or_404(db: AsyncSession, channel_id: int) -> AIChannel:
  res = await db.execute(select(AIChannel).where(AIChannel.id == channel_id))
  ch = res.scalar_one_or_none()
  if not ch:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Channel not found")
  return ch


@router.get("", response_model=list[ChannelOut])
async def list_channels(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> list[ChannelOut]:
  res = await db.execute(select(AIChannel).order_by(AIChannel.created_at.desc(), AIChannel.id.desc()))
  return [_channel_out(ch) for ch in res.scalars().all()]


@router.post("", response_model=ChannelCreateOut, status_code=status.HTTP_201_CREATED)
async def create_channel(payload: ChannelCreateIn, actor: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> ChannelCreateOut:
  name = (payload.name or "").strip()
  api_key = (payload.api_key or "").strip()
  if not name or not payload.type or not api_key:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name, type and api_key are required")
  ch = AIChannel(
    name=name,
    type=payload.type,
    base_url=(payload.base_url or "").strip(),
    api_key_encrypted=encrypt_secret(api_key),
    models=[],
    enabled=True,
  )
  db.add(ch)
  await db.flush()
  await write_audit(db, event_type="channel.created", entity_type="AIChannel", entity_id=ch.id, actor_id=actor.id, payload={"name": name, "type": ch.type})
  await db.commit()
  return ChannelCreateOut(id=ch.id, message="Channel created")


@router.get("/all-models", response_model=list[ModelChoiceOut])
async def all_models(_: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[ModelChoiceOut]:
  res = await db.execute(select(AIChannel).where(AIChannel.enabled.is_(True)).order_by(AIChannel.id.asc()))
  out: list[ModelChoiceOut] = []
  for ch in res.scalars().all():
    for m in _models(ch.models):
      out.append(
        ModelChoiceOut(
          channelId=ch.id,
          channelName=ch.name,
          channelType=ch.type,
          modelId=m.id,
          modelName=m.name,
          fullId=f"{ch.id}:{m.id}",
        )
      )
  return out


@router.get("/default", response_model=DefaultModelOut)
async def default_model(_: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> DefaultModelOut:
  resolved = await resolve_default_model(db)
  await db.commit()
  if resolved is None:
    return DefaultModelOut(configured=False)
  return DefaultModelOut(
    configured=True,
    channelId=resolved.channel_id,
    channelName=resolved.channel_name,
    type=resolved.channel_type,
    model=resolved.model,
  )


@router.put("/{channel_id}", response_model=ChannelOut)
async def update_channel(
  channel_id: int,
  payload: ChannelUpdateIn,
  actor: User = Depends(require_admin),
  db: AsyncSession = Depends(get_db),
) -> ChannelOut:
  ch = await _channel_or_404(db, channel_id)
  fields = payload.model_fields_set
  if "name" in fields and payload.name is not None:
    name = payload.name.strip()
    if not name:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name cannot be empty")
    ch.name = name
  if "type" in fields and payload.type is not None:
    ch.type = payload.type
  if "base_url" in fields:
    ch.base_url = (payload.base_url or "").strip()
  key_changed = False
  if "api_key" in fields:
    api_key = (payload.api_key or "").strip()
    if api_key and api_key != MASKED_SECRET:
      ch.api_key_encrypted = encrypt_secret(api_key)
      key_changed = True
  if "models" in fields and payload.models is not None:
    ch.models = [m.model_dump() for m in payload.models]
  if "enabled" in fields and payload.enabled is not None:
    ch.enabled = payload.enabled
  await write_audit(
    db,
    event_type="channel.updated",
    entity_type="AIChannel",
    entity_id=ch.id,
    actor_id=actor.id,
    payload={"name": ch.name, "type": ch.type, "enabled": ch.enabled, "keyChanged": key_changed},
  )
  await db.commit()
  await db.refresh(ch)
  return _channel_out(ch)


@router.delete("/{channel_id}", response_model=MessageOut)
async def delete_channel(channel_id: int, actor: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> MessageOut:
  ch = await _channel_or_404(db, channel_id)
  s = await load_site_settings(db)
  ref = parse_model_ref(s.default_model)
  if ref is not None and ref[0] == ch.id:
    s.default_model = ""
  await db.delete(ch)
  await write_audit(db, event_type="channel.deleted", entity_type="AIChannel", entity_id=channel_id, actor_id=actor.id, payload={"name": ch.name})
  await db.commit()
  return MessageOut(message="Channel deleted")


@router.post("/{channel_id}/fetch-models", response_model=FetchModelsOut)
async def fetch_models(channel_id: int, actor: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> FetchModelsOut:
  ch = await _channel_or_404(db, channel_id)
  api_key = decrypt_channel_secret(ch.api_key_encrypted)
  try:
    models = await list_models(channel_type=ch.type, api_key=api_key, base_url=ch.base_url or "")
  except AIProviderError as exc:
    logger.warning("model list for channel %s failed: %s", ch.id, exc)
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to fetch models: {exc}")
  ch.models = [{"id": m["id"], "name": m.get("name") or m["id"]} for m in models]
  await write_audit(db, event_type="channel.models_fetched", entity_type="AIChannel", entity_id=ch.id, actor_id=actor.id, payload={"count": len(models)})
  await db.commit()
  return FetchModelsOut(models=_models(ch.models), message=f"Fetched {len(models)} models")
