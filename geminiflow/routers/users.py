from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.audit import write_audit
from geminiflow.deps import get_current_user, get_db, require_admin
from geminiflow.models import Attachment, Project, Task, User
from geminiflow.routers.auth import MIN_PASSWORD_LENGTH
from geminiflow.schemas import MessageOut, ProfileUpdateIn, UserCreateIn, UserCreateOut, UserOut, UserRoleIn, UserUpdateIn
from geminiflow.security import hash_password, verify_password
from geminiflow.serializers import user_out
from geminiflow.storage import remove_uploads
from geminiflow.task_rules import delete_tasks

router = APIRouter(prefix="/users", tags=["users"])

ROLES = ("admin", "user")


async def _user_or_404(db: AsyncSession, user_id: int) -> User:
  res = await db.execute(select(User).where(User.id == user_id))
  u = res.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
  return u


async def _ensure_unique(db: AsyncSession, *, user_id: int | None, username: str | None, email: str | None) -> None:
  conds = []
  if username:
    conds.append(User.username == username)
  if email:
    conds.append(User.email == email)
  if not conds:
    return
  q = select(User.id).where(or_(*conds))
  if user_id is not None:
    q = q.where(User.id != user_id)
  if (await db.execute(q)).first() is not None:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username or email already exists")


@router.get("", response_model=list[UserOut])
async def list_users(_: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> list[UserOut]:
  res = await db.execute(select(User).order_by(User.created_at.asc(), User.id.asc()))
  return [user_out(u) for u in res.scalars().all()]


@router.post("", response_model=UserCreateOut, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreateIn, actor: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> UserCreateOut:
  username = (payload.username or "").strip()
  email = (payload.email or "").strip().lower()
  password = payload.password or ""
  if not username or not email or not password:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username, password and email are required")
  if len(password) < MIN_PASSWORD_LENGTH:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password must be at least 6 characters")
  await _ensure_unique(db, user_id=None, username=username, email=email)

  role = payload.role if payload.role in ROLES else "user"
  u = User(username=username, email=email, password_hash=hash_password(password), role=role)
  db.add(u)
  await db.flush()
  await write_audit(db, event_type="user.created", entity_type="User", entity_id=u.id, actor_id=actor.id, payload={"username": username, "role": role})
  await db.commit()
  await db.refresh(u)
  return UserCreateOut(message="User created", user=user_out(u))


@router.put("/me", response_model=UserOut)
async def update_me(payload: ProfileUpdateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> UserOut:
  username = (payload.username or "").strip() or None
  email = (payload.email or "").strip().lower() or None
  await _ensure_unique(db, user_id=user.id, username=username, email=email)
  if username:
    user.username = username
  if email:
    user.email = email
  if payload.newPassword:
    if not payload.currentPassword or not verify_password(payload.currentPassword, user.password_hash):
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Current password is incorrect")
    if len(payload.newPassword) < MIN_PASSWORD_LENGTH:
      raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password must be at least 6 characters")
    user.password_hash = hash_password(payload.newPassword)
  await write_audit(
    db,
    event_type="user.profile_updated",
    entity_type="User",
    entity_id=user.id,
    actor_id=user.id,
    payload={"username": username, "email": email, "passwordChanged": bool(payload.newPassword)},
  )
  await db.commit()
  await db.refresh(user)
  return user_out(user)


@router.put("/{user_id}/role", response_model=UserOut)
async def set_role(user_id: int, payload: UserRoleIn, actor: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> UserOut:
  if payload.role not in ROLES:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")
  u = await _user_or_404(db, user_id)
  before = u.role
  u.role = payload.role
  await write_audit(db, event_type="user.role_changed", entity_type="User", entity_id=u.id, actor_id=actor.id, payload={"from": before, "to": u.role})
  await db.commit()
  await db.refresh(u)
  return user_out(u)


@router.put("/{user_id}", response_model=UserOut)
async def update_user(user_id: int, payload: UserUpdateIn, actor: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> UserOut:
  u = await _user_or_404(db, user_id)
  username = (payload.username or "").strip() or None
  email = (payload.email or "").strip().lower() or None
  await _ensure_unique(db, user_id=u.id, username=username, email=email)
  if username:
    u.username = username
  if email:
    u.email = email
  if payload.password and len(payload.password) >= MIN_PASSWORD_LENGTH:
    u.password_hash = hash_password(payload.password)
  if payload.role in ROLES:
    u.role = payload.role
  await write_audit(
    db,
    event_type="user.updated",
    entity_type="User",
    entity_id=u.id,
    actor_id=actor.id,
    payload={"username": u.username, "email": u.email, "role": u.role},
  )
  await db.commit()
  await db.refresh(u)
  return user_out(u)


@router.delete("/{user_id}", response_model=MessageOut)
async def delete_user(user_id: int, actor: User = Depends(require_admin), db: AsyncSession = Depends(get_db)) -> MessageOut:
  if user_id == actor.id:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")
  u = await _user_or_404(db, user_id)

  orphaned: list[str] = []
  await delete_tasks(db, Task.owner_id == u.id, files=orphaned)
  # attachments this user uploaded to other users' tasks
  ares = await db.execute(select(Attachment.filename).where(Attachment.owner_id == u.id))
  orphaned.extend(ares.scalars().all())
  await db.execute(delete(Attachment).where(Attachment.owner_id == u.id))
  project_ids = select(Project.id).where(Project.owner_id == u.id)
  await delete_tasks(db, Task.project_id.in_(project_ids), files=orphaned)
  await db.execute(delete(Project).where(Project.owner_id == u.id))
  await db.delete(u)
  await write_audit(db, event_type="user.deleted", entity_type="User", entity_id=user_id, actor_id=actor.id, payload={"username": u.username})
  await db.commit()
  remove_uploads(orphaned)
  return MessageOut(message="User deleted")
