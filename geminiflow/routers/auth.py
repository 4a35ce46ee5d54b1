from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.audit import write_audit
from geminiflow.config import settings
from geminiflow.deps import client_ip, get_current_user, get_db, load_site_settings
from geminiflow.models import User
from geminiflow.rate_limit import limiter
from geminiflow.schemas import AuthOut, HasUsersOut, LoginIn, RegisterIn, UserOut
from geminiflow.security import create_access_token, hash_password, verify_password
from geminiflow.serializers import user_out

logger = logging.getLogger("geminiflow.auth")

router = APIRouter(prefix="/auth", tags=["auth"])

MIN_PASSWORD_LENGTH = 6


def _rate_limit_or_429(*, key: str, limit: int, window_seconds: int) -> None:
  allowed, retry_after = limiter.hit(key, limit=limit, window_seconds=window_seconds)
  if allowed:
    return
  raise HTTPException(
    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
    detail={"code": "rate_limited", "message": "Too many requests", "retryAfterSeconds": retry_after},
    headers={"Retry-After": str(retry_after)},
  )


async def _user_count(db: AsyncSession) -> int:
  return int((await db.execute(select(func.count(User.id)))).scalar_one())


@router.get("/has-users", response_model=HasUsersOut)
async def has_users(db: AsyncSession = Depends(get_db)) -> HasUsersOut:
  return HasUsersOut(hasUsers=await _user_count(db) > 0)


@router.post("/register", response_model=AuthOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterIn, request: Request, db: AsyncSession = Depends(get_db)) -> AuthOut:
  ip = client_ip(request)
  _rate_limit_or_429(key=f"auth:register:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute), window_seconds=60)

  username = (payload.username or "").strip()
  email = (payload.email or "").strip().lower()
  password = payload.password or ""
  if not username or not email or not password:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username, password and email are required")
  if len(password) < MIN_PASSWORD_LENGTH:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password must be at least 6 characters")

  is_first = await _user_count(db) == 0
  s = await load_site_settings(db)
  if not is_first and not s.allow_registration:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Registration is disabled")

  existing = await db.execute(select(User.id).where(or_(User.username == username, User.email == email)))
  if existing.first() is not None:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username or email already exists")

  role = "admin" if is_first else (s.default_role if s.default_role in ("admin", "user") else "user")
  u = User(username=username, email=email, password_hash=hash_password(password), role=role)
  db.add(u)
  await db.flush()
  await write_audit(db, event_type="auth.registered", entity_type="User", entity_id=u.id, actor_id=u.id, payload={"role": role, "ip": ip})
  await db.commit()
  await db.refresh(u)
  if is_first:
    logger.info("first user %s registered as admin", u.username)
  message = "Registered; first account granted admin" if is_first else "Registered"
  return AuthOut(user=user_out(u), token=create_access_token(user_id=u.id, role=u.role), message=message)


@router.post("/login", response_model=AuthOut)
async def login(payload: LoginIn, request: Request, db: AsyncSession = Depends(get_db)) -> AuthOut:
  ip = client_ip(request)
  username = (payload.username or "").strip()
  _rate_limit_or_429(key=f"auth:login:ip:{ip}", limit=int(settings.rate_limit_login_ip_per_minute), window_seconds=60)
  if username:
    _rate_limit_or_429(
      key=f"auth:login:username:{username.lower()}",
      limit=int(settings.rate_limit_login_username_per_minute),
      window_seconds=60,
    )

  res = await db.execute(select(User).where(User.username == username))
  u = res.scalar_one_or_none()
  if not u or not verify_password(payload.password or "", u.password_hash):
    await write_audit(db, event_type="auth.login.failed", entity_type="Auth", entity_id=None, payload={"username": username, "ip": ip})
    await db.commit()
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

  await write_audit(db, event_type="auth.login", entity_type="User", entity_id=u.id, actor_id=u.id, payload={"ip": ip})
  await db.commit()
  return AuthOut(user=user_out(u), token=create_access_token(user_id=u.id, role=u.role))


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return user_out(user)
