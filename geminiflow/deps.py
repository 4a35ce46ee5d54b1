from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.db import SessionLocal
from geminiflow.models import SiteSettings, User
from geminiflow.security import TokenError, decode_access_token


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  token = auth.split(" ", 1)[1].strip()
  if not token:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  try:
    claims = decode_access_token(token)
  except TokenError:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

  res = await db.execute(select(User).where(User.id == int(claims["sub"])))
  u = res.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  return u


async def require_admin(user: User = Depends(get_current_user)) -> User:
  if user.role != "admin":
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin required")
  return user


async def load_site_settings(db: AsyncSession) -> SiteSettings:
  res = await db.execute(select(SiteSettings).where(SiteSettings.id == 1))
  s = res.scalar_one_or_none()
  if s is None:
    s = SiteSettings(id=1)
    db.add(s)
    await db.flush()
  return s


def client_ip(request: Request) -> str:
  return request.client.host if request.client else "unknown"
