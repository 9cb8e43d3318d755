"""Attachment endpoints: upload, list, download and delete task files."""

from datetime import datetime
from pathlib import Path
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowops.api.v1.auth import CurrentUser
from flowops.api.v1.common import APISchema, Effects, UserSummary, ok
from flowops.db.session import get_db_session
from flowops.exceptions import NotFound, ValidationFailed
from flowops.models.task import Attachment
from flowops.services.access_control import (
    AccessTarget,
    check_task_access,
    get_task_or_404,
    require,
)
from flowops.services.storage import remove_file, save_upload

router = APIRouter()
task_router = APIRouter()
logger = structlog.get_logger()


class AttachmentOut(APISchema):
    id: UUID
    filename: str
    original_name: str
    mimetype: str
    size: int
    formatted_size: str
    task_id: UUID
    uploaded_by: UserSummary
    created_at: datetime


async def _get_attachment_or_404(db: AsyncSession, attachment_id: UUID) -> Attachment:
    attachment = await db.get(Attachment, attachment_id)
    if attachment is None:
        raise NotFound("Attachment not found")
    return attachment


@task_router.get("/{task_id}/attachments")
async def list_attachments(
    task_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    task, _ = await check_task_access(db, task_id, current_user)
    result = await db.execute(
        select(Attachment)
        .where(Attachment.task_id == task.id)
        .order_by(Attachment.created_at.desc())
    )
    data = [AttachmentOut.model_validate(a) for a in result.scalars().unique()]
    return ok(data, count=len(data))


@task_router.post("/{task_id}/attachments", status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    task_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    file: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Upload a file to a task (multipart field ``file``)."""
    task, project = await check_task_access(db, task_id, current_user)
    if file is None:
        raise ValidationFailed("Please upload a file")

    filename, path, size = await save_upload(file)
    attachment = Attachment(
        filename=filename,
        original_name=file.filename or filename,
        mimetype=file.content_type or "application/octet-stream",
        size=size,
        path=str(path),
        task_id=task.id,
        uploaded_by_id=current_user.id,
        uploaded_by=current_user,
    )
    db.add(attachment)
    try:
        await db.commit()
    except Exception:
        remove_file(path)
        raise

    data = AttachmentOut.model_validate(attachment)
    await effects.to_project(
        project.id, "task:attachments_changed", {"taskId": str(task.id)}
    )
    return ok(data)


@router.get("/{attachment_id}/download")
async def download_attachment(
    attachment_id: UUID,
    current_user: CurrentUser,
    db: AsyncSession = Depends(get_db_session),
) -> FileResponse:
    attachment = await _get_attachment_or_404(db, attachment_id)
    await check_task_access(db, attachment.task_id, current_user)

    path = Path(attachment.path)
    if not path.is_file():
        raise NotFound("File not found on server")
    return FileResponse(path, media_type=attachment.mimetype, filename=attachment.original_name)


@router.delete("/{attachment_id}")
async def delete_attachment(
    attachment_id: UUID,
    current_user: CurrentUser,
    effects: Effects,
    db: AsyncSession = Depends(get_db_session),
) -> dict:
    """Delete an attachment (uploader or admin) and its file."""
    attachment = await _get_attachment_or_404(db, attachment_id)
    require(current_user, "attachment.delete", AccessTarget(uploader_id=attachment.uploaded_by_id))
    task = await get_task_or_404(db, attachment.task_id)
    path = attachment.path

    await db.delete(attachment)
    await db.commit()
    remove_file(path)

    logger.info("Attachment deleted", attachment_id=str(attachment_id))
    await effects.to_project(
        task.project_id, "task:attachments_changed", {"taskId": str(task.id)}
    )
    return ok({})
