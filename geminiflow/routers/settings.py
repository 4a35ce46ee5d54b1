from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.ai.service import parse_model_ref
from geminiflow.audit import write_audit
from geminiflow.deps import get_db, load_site_settings, require_admin
from geminiflow.models import SiteSettings, User
from geminiflow.schemas import PublicSettingsOut, SettingsOut, SettingsUpdateIn
from geminiflow.storage import normalize_file_types

logger = logging.getLogger("geminiflow.settings")

router = APIRouter(prefix="/settings", tags=["settings"])


def _settings_out(s: SiteSettings) -> SettingsOut:
  return SettingsOut(
    siteName=s.site_name,
    allowRegistration=bool(s.allow_registration),
    defaultRole=s.default_role if s.default_role in ("admin", "user") else "user",
    defaultModel=s.default_model or "",
    allowedFileTypes=s.allowed_file_types,
    maxFileSize=int(s.max_file_size),
  )


@router.get("/public", response_model=PublicSettingsOut)
async def public_settings(db: AsyncSession = Depends(get_db)) -> PublicSettingsOut:
  try:
    s = await load_site_settings(db)
    await db.commit()
  except SQLAlchemyError as exc:
    logger.warning("settings unavailable, serving defaults: %s", exc)
    return PublicSettingsOut(siteName="GeminiFlow", allowRegistration=True)
  return PublicSettingsOut(siteName=s.site_name, allowRegistration=bool(s.allow_registration))


@router.get("", response_model=SettingsOut)
async def get_settings(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> SettingsOut:
  s = await load_site_settings(db)
  await db.commit()
  return _settings_out(s)


@router.put("", response_model=SettingsOut)
async def update_settings(payload: SettingsUpdateIn, actor: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> SettingsOut:
  s = await load_site_settings(db)
  fields = payload.model_fields_set
  if "siteName" in fields and payload.siteName is not None:
    name = payload.siteName.strip()
    if not name:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="siteName cannot be empty")
    s.site_name = name
  if "allowRegistration" in fields and payload.allowRegistration is not None:
    s.allow_registration = payload.allowRegistration
  if "defaultRole" in fields and payload.defaultRole is not None:
    if payload.defaultRole not in ("admin", "user"):
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="defaultRole must be admin or user")
    s.default_role = payload.defaultRole
  if "defaultModel" in fields:
    model_ref = (payload.defaultModel or "").strip()
    if model_ref and parse_model_ref(model_ref) is None:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="defaultModel must be channelId:modelId")
    s.default_model = model_ref
  if "allowedFileTypes" in fields and payload.allowedFileTypes is not None:
    types = normalize_file_types(payload.allowedFileTypes)
    if not types:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="allowedFileTypes cannot be empty")
    s.allowed_file_types = types
  if "maxFileSize" in fields and payload.maxFileSize is not None:
    if payload.maxFileSize <= 0:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="maxFileSize must be positive")
    s.max_file_size = payload.maxFileSize

  await write_audit(
    db,
    event_type="settings.updated",
    entity_type="Settings",
    entity_id=1,
    actor_id=actor.id,
    payload=payload.model_dump(exclude_unset=True),
  )
  await db.commit()
  await db.refresh(s)
  return _settings_out(s)
