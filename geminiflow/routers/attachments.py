from __future__ import annotations

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geminiflow.audit import write_audit
from geminiflow.config import settings
from geminiflow.deps import get_current_user, get_db, load_site_settings
from geminiflow.models import Attachment, Task, User
from geminiflow.schemas import AttachmentOut, MessageOut
from geminiflow.serializers import attachment_out
from geminiflow.storage import allowed_extensions, decode_original_filename, file_extension, remove_upload, stored_path, write_upload
from geminiflow.task_rules import owned_task_or_404

router = APIRouter(prefix="/attachments", tags=["attachments"])


async def _owned_attachment_or_404(db: AsyncSession, *, attachment_id: int, owner_id: int) -> Attachment:
  res = await db.execute(
    select(Attachment).join(Task, Task.id == Attachment.task_id).where(Attachment.id == attachment_id, Task.owner_id == owner_id)
  )
  a = res.scalar_one_or_none()
  if not a:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")
  return a


@router.post("/task/{task_id}", response_model=AttachmentOut, status_code=status.HTTP_201_CREATED)
async def upload_attachment(
  task_id: int,
  file: UploadFile | None = File(default=None),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> AttachmentOut:
  t = await owned_task_or_404(db, task_id=task_id, owner_id=user.id)
  if file is None or not file.filename:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

  s = await load_site_settings(db)
  original_name = decode_original_filename(file.filename)
  ext = file_extension(original_name)
  if ext not in allowed_extensions(s.allowed_file_types):
    raise HTTPException(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, detail=f"File type {ext or '(none)'} is not allowed")

  limit = min(int(s.max_file_size) * 1024 * 1024, int(settings.max_upload_bytes_hard))
  data = await file.read(limit + 1)
  if len(data) > limit:
    raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=f"File exceeds the {s.max_file_size} MB limit")

  a = Attachment(
    task_id=t.id,
    owner_id=user.id,
    filename=write_upload(data, original_name),
    original_name=original_name,
    mime_type=file.content_type or "application/octet-stream",
    size=len(data),
  )
  db.add(a)
  await db.flush()
  await write_audit(
    db,
    event_type="attachment.added",
    entity_type="Attachment",
    entity_id=a.id,
    actor_id=user.id,
    payload={"taskId": t.id, "filename": original_name, "size": a.size},
  )
  await db.commit()
  await db.refresh(a)
  return attachment_out(a)


@router.get("/task/{task_id}", response_model=list[AttachmentOut])
async def list_attachments(task_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[AttachmentOut]:
  await owned_task_or_404(db, task_id=task_id, owner_id=user.id)
  res = await db.execute(
    select(Attachment).where(Attachment.task_id == task_id).order_by(Attachment.created_at.desc(), Attachment.id.desc())
  )
  return [attachment_out(a) for a in res.scalars().all()]


@router.get("/download/{attachment_id}")
async def download_attachment(attachment_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> FileResponse:
  a = await _owned_attachment_or_404(db, attachment_id=attachment_id, owner_id=user.id)
  path = stored_path(a.filename)
  if not path.is_file():
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
  return FileResponse(path=path, media_type=a.mime_type, filename=a.original_name)


@router.delete("/{attachment_id}", response_model=MessageOut)
async def delete_attachment(attachment_id: int, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> MessageOut:
  a = await _owned_attachment_or_404(db, attachment_id=attachment_id, owner_id=user.id)
  stored = a.filename
  await db.delete(a)
  await write_audit(db, event_type="attachment.deleted", entity_type="Attachment", entity_id=attachment_id, actor_id=user.id, payload={"filename": a.original_name})
  await db.commit()
  remove_upload(stored)
  return MessageOut(message="Attachment deleted")
