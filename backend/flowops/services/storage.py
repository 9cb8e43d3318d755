"""Attachment file storage on local disk."""

import os
import re
import time
import uuid
from pathlib import Path

import structlog
from fastapi import UploadFile

from flowops.config import get_settings
from flowops.exceptions import ValidationFailed

logger = structlog.get_logger()

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def _stored_name(original: str) -> str:
    ext = os.path.splitext(original)[1]
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}{_UNSAFE.sub('', ext)}"


async def save_upload(file: UploadFile) -> tuple[str, Path, int]:
    """Write an upload to the upload directory.

    Returns:
        (stored filename, path on disk, size in bytes)
    """
    settings = get_settings()
    limit = settings.max_upload_size_bytes

    data = await file.read(limit + 1)
    if len(data) > limit:
        raise ValidationFailed(f"File too large. Maximum size is {limit // (1024 * 1024)}MB")
    if not data:
        raise ValidationFailed("Please upload a file")

    settings.upload_dir.mkdir(parents=True, exist_ok=True)
    filename = _stored_name(file.filename or "upload")
    path = settings.upload_dir / filename
    with open(path, "wb") as f:
        f.write(data)

    logger.info("Attachment stored", filename=filename, size=len(data))
    return filename, path, len(data)


def remove_file(path: str | Path) -> None:
    """Delete a stored file; a missing or undeletable file is only logged."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("attachment_file_remove_failed", path=str(path), error=str(e))
